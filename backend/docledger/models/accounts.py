from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .base import (
    KIND_ACCOUNT,
    KIND_TRANSACTION,
    Actor,
    audit_fields,
    audit_kwargs,
    non_negative,
    require_kind,
)


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"


TRANSFER_TYPES = {TransactionType.TRANSFER_IN, TransactionType.TRANSFER_OUT}


@dataclass(frozen=True)
class Account:
    """
    A money account. Balance is held in integer minor units.

    INVARIANT: balance >= 0. Any record built with a negative balance is
    rejected, so a debit that would overdraw cannot even be expressed.
    """
    id: str
    name: str
    balance: int
    currency: str
    type: str
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("account name is required")
        if not self.currency:
            raise ValueError("account currency is required")
        if isinstance(self.balance, bool) or not isinstance(self.balance, int):
            raise ValueError("account balance must be an integer amount of minor units")
        non_negative("balance", self.balance)

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_ACCOUNT,
            "name": self.name,
            "balance": self.balance,
            "currency": self.currency,
            "type": self.type,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "Account":
        require_kind(doc, KIND_ACCOUNT)
        return cls(
            id=doc["_id"],
            name=doc["name"],
            balance=doc["balance"],
            currency=doc["currency"],
            type=doc.get("type"),
            **audit_kwargs(doc),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "balance": self.balance,
            "currency": self.currency,
            "type": self.type,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class Transaction:
    """
    Immutable ledger entry. Written by the account sagas, deleted only as a
    compensation when the saga that wrote it fails.
    """
    id: str
    type: TransactionType
    account_id: str
    amount: int
    category_id: str
    currency: str
    balance_after: int
    timestamp: str
    related_account_id: str | None = None
    transfer_id: str | None = None
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        object.__setattr__(self, "type", TransactionType(self.type))
        non_negative("amount", self.amount)
        non_negative("balance_after", self.balance_after)
        if self.type in TRANSFER_TYPES:
            if not self.transfer_id:
                raise ValueError("transfer transactions require transfer_id")
            if not self.related_account_id:
                raise ValueError("transfer transactions require related_account_id")

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_TRANSACTION,
            "type": self.type.value,
            "accountId": self.account_id,
            "amount": self.amount,
            "categoryId": self.category_id,
            "currency": self.currency,
            "balanceAfter": self.balance_after,
            "timestamp": self.timestamp,
            "relatedAccountId": self.related_account_id,
            "transferId": self.transfer_id,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "Transaction":
        require_kind(doc, KIND_TRANSACTION)
        return cls(
            id=doc["_id"],
            type=doc["type"],
            account_id=doc["accountId"],
            amount=doc["amount"],
            category_id=doc["categoryId"],
            currency=doc["currency"],
            balance_after=doc["balanceAfter"],
            timestamp=doc["timestamp"],
            related_account_id=doc.get("relatedAccountId"),
            transfer_id=doc.get("transferId"),
            **audit_kwargs(doc),
        )
