from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base class for per-record failures raised while applying a transaction."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, tx_id: Optional[int] = None, client_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.tx_id = tx_id
        self.client_id = client_id


class UnknownTransaction(LedgerError):
    code = "UNKNOWN_TRANSACTION"

    def __init__(self, tx_id: int, client_id: int):
        super().__init__(f"Transaction {tx_id} does not exist", tx_id, client_id)


class ClientMismatch(LedgerError):
    code = "CLIENT_MISMATCH"

    def __init__(self, tx_id: int, client_id: int, owner_id: int):
        super().__init__(
            f"Transaction {tx_id} belongs to client {owner_id}, not {client_id}",
            tx_id,
            client_id,
        )
        self.owner_id = owner_id


class InvalidState(LedgerError):
    code = "INVALID_STATE"

    def __init__(self, tx_id: int, client_id: int, status: str, action: str):
        super().__init__(f"Cannot {action} transaction {tx_id} in status '{status}'", tx_id, client_id)
        self.status = status


class InsufficientFunds(LedgerError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, tx_id: int, client_id: int, requested: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient funds: requested {requested}, available {available}",
            tx_id,
            client_id,
        )
        self.requested = requested
        self.available = available


class AccountLocked(LedgerError):
    code = "ACCOUNT_LOCKED"

    def __init__(self, client_id: int, tx_id: Optional[int] = None):
        super().__init__(f"Account {client_id} is locked", tx_id, client_id)


class InvalidAmount(LedgerError):
    code = "INVALID_AMOUNT"

    def __init__(self, tx_id: int, client_id: int, amount: Optional[Decimal]):
        detail = "missing" if amount is None else f"non-positive ({amount})"
        super().__init__(f"Amount is {detail}", tx_id, client_id)
        self.amount = amount


class DuplicateTransaction(LedgerError):
    code = "DUPLICATE_TRANSACTION"

    def __init__(self, tx_id: int, client_id: int):
        super().__init__(f"Transaction {tx_id} was already applied", tx_id, client_id)


class BalanceOverflow(LedgerError):
    code = "BALANCE_OVERFLOW"

    def __init__(self, client_id: int, limit: Decimal, tx_id: Optional[int] = None):
        super().__init__(f"Balance of account {client_id} would exceed {limit}", tx_id, client_id)
        self.limit = limit
