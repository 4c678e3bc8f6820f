# Overview: Service-layer operations for accounts; deposits, withdrawals and the transfer saga.

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ..models import Account, Actor, Transaction, TransactionType
from ..models.base import (
    KIND_ACCOUNT,
    KIND_CATEGORY,
    KIND_TRANSACTION,
    coerce_actor,
    document_id,
    new_local_id,
    stamped,
)
from ..models.catalog import CATEGORY_EXPENSE, CATEGORY_INCOME
from ..time_utils import now_iso
from . import audit_service, catalog_service
from .document_store import DocumentNotFoundError, DocumentStore, WriteResult, get_document, get_store
from .errors import ConflictError, NotFoundError, ValidationError
from .saga import Saga
"""
Account Invariants

- Balances are integer minor units and never persisted negative.
- Balances change only through deposit / withdraw / transfer, and every
  change is paired with exactly one Transaction per affected account.
- A transfer writes, in order: debit, credit, transfer_out, transfer_in.
  Any failure unwinds in reverse (delete transactions, undo credit, undo
  debit) and surfaces OperationFailedError("account.transfer.failed").
- All preconditions are checked before the first write.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    from_account: Account
    to_account: Account
    transactions: tuple[Transaction, Transaction]
    transfer_id: str


def _validate_amount(amount, *, minimum: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < minimum:
        raise ValidationError("account.invalid_amount", amount=amount)


def _require_category(tenant_id: str, category_id: str | None, expected_type: str | None, store: DocumentStore):
    if not category_id:
        raise ValidationError("account.category_required")
    return catalog_service.get_category(tenant_id, category_id, expected_type=expected_type, store=store)


def _write_account(saga: Saga, step: str, original: Account, balance: int, actor: Actor,
                   at: str, store: DocumentStore) -> Account:
    """Write a new balance as a saga step; the compensation puts `original` back."""
    updated = stamped(replace(original, balance=balance), actor, at)

    def _undo(written: WriteResult):
        store.insert(replace(original, rev=written.rev).to_document())

    result = saga.run(step, lambda: store.insert(updated.to_document()), _undo)
    return replace(updated, rev=result.rev)


def _write_transaction(saga: Saga, step: str, txn: Transaction, store: DocumentStore) -> Transaction:
    """Write a ledger entry as a saga step; the compensation deletes it."""
    result = saga.run(
        step,
        lambda: store.insert(txn.to_document()),
        lambda written: store.destroy(written.id, written.rev),
    )
    return replace(txn, rev=result.rev)


def _new_transaction(tenant_id: str, actor: Actor, at: str, **fields) -> Transaction:
    txn = Transaction(id=document_id(tenant_id, KIND_TRANSACTION, new_local_id()), timestamp=at, **fields)
    return stamped(txn, actor, at)


def create_account(
    tenant_id: str,
    actor: Actor | str,
    name: str,
    initial_balance: int,
    type: str,
    currency: str,
    *,
    store: DocumentStore | None = None,
) -> Account:
    """Open an account. Name/type/currency must be unique within the tenant."""
    store = store or get_store()
    actor = coerce_actor(actor)
    if isinstance(initial_balance, bool) or not isinstance(initial_balance, int):
        raise ValidationError("account.invalid_amount", amount=initial_balance)
    if initial_balance < 0:
        raise ValidationError("account.create.negative_initial_balance")
    if not name or not currency:
        raise ValidationError("account.create.invalid")

    existing = store.find(
        tenant_id,
        {"kind": KIND_ACCOUNT, "name": name, "type": type, "currency": currency},
        limit=1,
    )
    if existing:
        raise ConflictError("account.create.duplicate", name=name)

    now = now_iso()
    account = stamped(
        Account(
            id=document_id(tenant_id, KIND_ACCOUNT, new_local_id()),
            name=name,
            balance=initial_balance,
            currency=currency,
            type=type,
        ),
        actor,
        now,
    )
    with Saga("account.create", failure_key="account.create.failed") as saga:
        result = saga.run("account", lambda: store.insert(account.to_document()))
    account = replace(account, rev=result.rev)

    audit_service.record(
        tenant_id, actor, "account.create", "account", account.id,
        {"name": name, "currency": currency, "initialBalance": initial_balance},
        store=store,
    )
    return account


def get_account(tenant_id: str, account_id: str, *, store: DocumentStore | None = None) -> Account:
    store = store or get_store()
    try:
        doc = get_document(store, tenant_id, KIND_ACCOUNT, document_id(tenant_id, KIND_ACCOUNT, account_id))
    except DocumentNotFoundError:
        raise NotFoundError("account.not_found", accountId=account_id)
    return Account.from_document(doc)


def list_accounts(tenant_id: str, *, store: DocumentStore | None = None) -> list[Account]:
    store = store or get_store()
    docs = store.find(tenant_id, {"kind": KIND_ACCOUNT}, sort=["name"])
    return [Account.from_document(d) for d in docs]


def deposit(
    tenant_id: str,
    actor: Actor | str,
    account_id: str,
    amount: int,
    category_id: str,
    *,
    store: DocumentStore | None = None,
) -> tuple[Account, Transaction]:
    """Credit an account against an income category."""
    store = store or get_store()
    actor = coerce_actor(actor)
    category = _require_category(tenant_id, category_id, CATEGORY_INCOME, store)
    _validate_amount(amount, minimum=1)
    account = get_account(tenant_id, account_id, store=store)

    now = now_iso()
    with Saga("account.deposit", failure_key="account.deposit.failed") as saga:
        updated = _write_account(saga, "credit", account, account.balance + amount, actor, now, store)
        txn = _write_transaction(
            saga,
            "deposit",
            _new_transaction(
                tenant_id, actor, now,
                type=TransactionType.DEPOSIT,
                account_id=account.id,
                amount=amount,
                category_id=category.id,
                currency=account.currency,
                balance_after=updated.balance,
            ),
            store,
        )

    audit_service.record(
        tenant_id, actor, "account.deposit", "account", account.id,
        {"amount": amount, "categoryId": category.id, "transactionId": txn.id},
        store=store,
    )
    return updated, txn


def withdraw(
    tenant_id: str,
    actor: Actor | str,
    account_id: str,
    amount: int,
    category_id: str,
    *,
    store: DocumentStore | None = None,
) -> tuple[Account, Transaction]:
    """Debit an account against an expense category."""
    store = store or get_store()
    actor = coerce_actor(actor)
    category = _require_category(tenant_id, category_id, CATEGORY_EXPENSE, store)
    _validate_amount(amount, minimum=1)
    account = get_account(tenant_id, account_id, store=store)
    if account.balance < amount:
        raise ValidationError("account.withdraw.insufficient_funds", balance=account.balance, amount=amount)

    now = now_iso()
    with Saga("account.withdraw", failure_key="account.withdraw.failed") as saga:
        updated = _write_account(saga, "debit", account, account.balance - amount, actor, now, store)
        txn = _write_transaction(
            saga,
            "withdraw",
            _new_transaction(
                tenant_id, actor, now,
                type=TransactionType.WITHDRAW,
                account_id=account.id,
                amount=amount,
                category_id=category.id,
                currency=account.currency,
                balance_after=updated.balance,
            ),
            store,
        )

    audit_service.record(
        tenant_id, actor, "account.withdraw", "account", account.id,
        {"amount": amount, "categoryId": category.id, "transactionId": txn.id},
        store=store,
    )
    return updated, txn


def transfer(
    tenant_id: str,
    actor: Actor | str,
    from_account_id: str,
    to_account_id: str,
    amount: int,
    category_id: str,
    *,
    store: DocumentStore | None = None,
) -> TransferResult:
    """
    Move `amount` between two accounts of the same currency.

    Preconditions, in order: category given, category exists, amount is a
    non-negative integer, both accounts exist, accounts differ, currencies
    match, funds suffice. Zero amounts pass.
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    category = _require_category(tenant_id, category_id, None, store)
    _validate_amount(amount, minimum=0)

    source = get_account(tenant_id, from_account_id, store=store)
    target = get_account(tenant_id, to_account_id, store=store)
    if source.id == target.id:
        raise ValidationError("account.transfer.same_account", accountId=source.id)
    if source.currency != target.currency:
        raise ValidationError(
            "account.transfer.currency_mismatch",
            fromCurrency=source.currency,
            toCurrency=target.currency,
        )
    if source.balance < amount:
        raise ValidationError("account.transfer.insufficient_funds", balance=source.balance, amount=amount)

    transfer_id = f"transfer-{new_local_id()}"
    now = now_iso()
    logger.debug("transfer %s: %s -> %s amount=%s", transfer_id, source.id, target.id, amount)

    with Saga("account.transfer", failure_key="account.transfer.failed", transferId=transfer_id) as saga:
        debited = _write_account(saga, "debit", source, source.balance - amount, actor, now, store)
        credited = _write_account(saga, "credit", target, target.balance + amount, actor, now, store)
        txn_out = _write_transaction(
            saga,
            "transfer_out",
            _new_transaction(
                tenant_id, actor, now,
                type=TransactionType.TRANSFER_OUT,
                account_id=source.id,
                amount=amount,
                category_id=category.id,
                currency=source.currency,
                balance_after=debited.balance,
                related_account_id=target.id,
                transfer_id=transfer_id,
            ),
            store,
        )
        txn_in = _write_transaction(
            saga,
            "transfer_in",
            _new_transaction(
                tenant_id, actor, now,
                type=TransactionType.TRANSFER_IN,
                account_id=target.id,
                amount=amount,
                category_id=category.id,
                currency=target.currency,
                balance_after=credited.balance,
                related_account_id=source.id,
                transfer_id=transfer_id,
            ),
            store,
        )

    audit_service.record(
        tenant_id, actor, "account.transfer", "account", source.id,
        {
            "toAccountId": target.id,
            "amount": amount,
            "categoryId": category.id,
            "transferId": transfer_id,
        },
        store=store,
    )
    return TransferResult(
        from_account=debited,
        to_account=credited,
        transactions=(txn_out, txn_in),
        transfer_id=transfer_id,
    )


def list_transactions(
    tenant_id: str,
    *,
    account_id: str | None = None,
    category_id: str | None = None,
    type: str | None = None,
    start: str | None = None,
    end: str | None = None,
    transfer_id: str | None = None,
    store: DocumentStore | None = None,
) -> list[Transaction]:
    """Ledger entries matching the filters, newest first. start/end are inclusive ISO timestamps."""
    store = store or get_store()
    selector: dict = {"kind": KIND_TRANSACTION}
    if account_id:
        selector["accountId"] = document_id(tenant_id, KIND_ACCOUNT, account_id)
    if category_id:
        selector["categoryId"] = document_id(tenant_id, KIND_CATEGORY, category_id)
    if type:
        try:
            selector["type"] = TransactionType(type).value
        except ValueError:
            raise ValidationError("account.transactions.invalid_type", type=type)
    if transfer_id:
        selector["transferId"] = transfer_id
    if start or end:
        window = {}
        if start:
            window["$gte"] = start
        if end:
            window["$lte"] = end
        selector["timestamp"] = window

    docs = store.find(tenant_id, selector, sort=[{"timestamp": "desc"}])
    return [Transaction.from_document(d) for d in docs]
