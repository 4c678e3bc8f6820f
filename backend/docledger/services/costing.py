# Overview: Weighted-average cost arithmetic for stock movements (pure, no I/O).

"""
Stock Costing Rules

- Money is integer minor units; averageCost is the unrounded quotient
  totalValue / quantityOnHand so that totalValue == round(averageCost * qty)
  holds after every movement.
- Rounding is nearest minor unit, half-up.
- quantityAvailable moves by the same delta as quantityOnHand; reserved
  quantity is never touched here.
- Every movement stamps lastAdjustment, including zero-quantity ones.
- No stock-out guard: quantity may go negative. A negative or empty ledger
  carries no value.
"""
from __future__ import annotations

from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from ..models import Stock, StockAdjustment, StockMovement


def round_half_up(value: float | int) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _moved(stock: Stock, *, quantity_on_hand: int, average_cost: float, total_value: int,
           adjustment: StockAdjustment, last_purchase_cost: int | None) -> Stock:
    delta = quantity_on_hand - stock.quantity_on_hand
    return replace(
        stock,
        quantity_on_hand=quantity_on_hand,
        quantity_available=stock.quantity_available + delta,
        average_cost=average_cost,
        total_value=total_value,
        last_purchase_cost=last_purchase_cost,
        last_adjustment=adjustment,
    )


def apply_stock_in(stock: Stock, quantity: int, unit_cost: int | None, adjustment: StockAdjustment) -> Stock:
    """
    Receive `quantity` units at `unit_cost`.

    Without a unit cost the units come in at the current average, so value
    grows but the average does not move.
    """
    new_qty = stock.quantity_on_hand + quantity
    last_purchase_cost = stock.last_purchase_cost
    if unit_cost is None:
        unit_cost_value = stock.average_cost
    else:
        unit_cost_value = unit_cost
        last_purchase_cost = unit_cost

    if quantity == 0:
        average_cost, total_value = stock.average_cost, stock.total_value
    elif new_qty > 0:
        total_value = max(0, round_half_up(stock.total_value + quantity * unit_cost_value))
        average_cost = total_value / new_qty
    else:
        average_cost, total_value = 0.0, 0

    return _moved(
        stock,
        quantity_on_hand=new_qty,
        average_cost=average_cost,
        total_value=total_value,
        adjustment=adjustment,
        last_purchase_cost=last_purchase_cost,
    )


def apply_stock_out(stock: Stock, quantity: int, adjustment: StockAdjustment) -> Stock:
    """Issue `quantity` units at the current average cost."""
    new_qty = stock.quantity_on_hand - quantity

    if quantity == 0:
        average_cost, total_value = stock.average_cost, stock.total_value
    elif new_qty > 0:
        total_value = max(0, round_half_up(stock.total_value - quantity * stock.average_cost))
        average_cost = total_value / new_qty
    elif new_qty == 0:
        # Empty shelf keeps the last known unit price for the next adjustment.
        total_value = 0
        average_cost = float(stock.last_purchase_cost or 0)
    else:
        average_cost, total_value = 0.0, 0

    return _moved(
        stock,
        quantity_on_hand=new_qty,
        average_cost=average_cost,
        total_value=total_value,
        adjustment=adjustment,
        last_purchase_cost=stock.last_purchase_cost,
    )


def apply_adjustment(stock: Stock, exact_quantity: int, adjustment: StockAdjustment) -> Stock:
    """Set on-hand to `exact_quantity`, prorating value by the quantity ratio."""
    old_qty = stock.quantity_on_hand

    if exact_quantity == 0:
        average_cost, total_value = stock.average_cost, 0
    elif exact_quantity < 0:
        average_cost, total_value = 0.0, 0
    elif old_qty > 0:
        total_value = round_half_up(stock.total_value * exact_quantity / old_qty)
        average_cost = total_value / exact_quantity
    else:
        unit = stock.average_cost or stock.last_purchase_cost or 0
        total_value = round_half_up(unit * exact_quantity)
        average_cost = total_value / exact_quantity

    return _moved(
        stock,
        quantity_on_hand=exact_quantity,
        average_cost=average_cost,
        total_value=total_value,
        adjustment=adjustment,
        last_purchase_cost=stock.last_purchase_cost,
    )


def apply_movement(stock: Stock, adjustment: StockAdjustment) -> Stock:
    """Dispatch on adjustment.type; the adjustment becomes lastAdjustment."""
    movement = StockMovement(adjustment.type)
    if movement == StockMovement.IN:
        return apply_stock_in(stock, adjustment.quantity, adjustment.unit_cost, adjustment)
    if movement == StockMovement.OUT:
        return apply_stock_out(stock, adjustment.quantity, adjustment)
    return apply_adjustment(stock, adjustment.quantity, adjustment)
