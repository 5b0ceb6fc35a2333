from decimal import Decimal
from typing import Iterable, List
import structlog

from config import Settings
from errors import (
    ClientMismatch,
    DuplicateTransaction,
    InsufficientFunds,
    InvalidAmount,
    InvalidState,
    LedgerError,
    UnknownTransaction,
)
from models import (
    AccountSnapshot,
    ApplyOutcome,
    EntryStatus,
    LedgerEntry,
    LedgerStats,
    TransactionRecord,
    TransactionType,
)
from repositories import (
    AccountRepository,
    InMemoryAccountRepository,
    InMemoryLedgerRepository,
    LedgerRepository,
)

# Configure structured logging
logger = structlog.get_logger()

ZERO = Decimal("0")


class LedgerService:
    """Applies transaction records, one at a time, against account state.

    Deposits and withdrawals are retained as ledger entries so that later
    dispute, resolve and chargeback records can be validated against them.
    Each entry moves through normal -> disputed -> resolved/charged_back.
    A rejected record never raises out of ``apply``; it is logged, counted
    and leaves both stores untouched.
    """

    def __init__(
        self,
        account_repo: AccountRepository,
        ledger_repo: LedgerRepository,
        allow_redispute: bool = False
    ):
        self.account_repo = account_repo
        self.ledger_repo = ledger_repo
        self.allow_redispute = allow_redispute
        self.stats = LedgerStats()

    def apply(self, record: TransactionRecord) -> ApplyOutcome:
        """Apply a single record and report whether it took effect."""

        # Every referenced client gets an account, even if the record is rejected
        self.account_repo.get_or_create(record.client_id)

        try:
            if record.type == TransactionType.deposit:
                self._deposit(record)
            elif record.type == TransactionType.withdrawal:
                self._withdraw(record)
            elif record.type == TransactionType.dispute:
                self._dispute(record)
            elif record.type == TransactionType.resolve:
                self._resolve(record)
            elif record.type == TransactionType.chargeback:
                self._chargeback(record)
            else:
                raise ValueError(f"Unhandled transaction type: {record.type}")
        except LedgerError as e:
            outcome = ApplyOutcome(
                tx_id=record.tx_id,
                client_id=record.client_id,
                type=record.type,
                applied=False,
                error_code=e.code,
                detail=e.message
            )
            logger.warning(
                "Transaction rejected",
                tx_id=record.tx_id,
                client_id=record.client_id,
                type=record.type.value,
                error_code=e.code,
                detail=e.message
            )
        else:
            outcome = ApplyOutcome(
                tx_id=record.tx_id,
                client_id=record.client_id,
                type=record.type,
                applied=True
            )
            logger.debug(
                "Transaction applied",
                tx_id=record.tx_id,
                client_id=record.client_id,
                type=record.type.value,
                amount=str(record.amount) if record.amount is not None else None
            )

        self.stats.record(outcome)
        return outcome

    def process(self, records: Iterable[TransactionRecord]) -> LedgerStats:
        """Apply every record of a stream, in order."""
        for record in records:
            self.apply(record)

        logger.info(
            "Ledger run completed",
            processed=self.stats.processed,
            applied=self.stats.applied,
            rejected=self.stats.rejected,
            accounts=self.account_repo.count(),
            entries=self.ledger_repo.count()
        )
        return self.stats

    def snapshot(self) -> List[AccountSnapshot]:
        return [AccountSnapshot.from_account(account) for account in self.account_repo.all()]

    def _deposit(self, record: TransactionRecord) -> None:
        amount = self._require_amount(record)
        self._require_unused(record)

        self.account_repo.apply_delta(record.client_id, amount, ZERO)
        self._record_entry(record, amount)

    def _withdraw(self, record: TransactionRecord) -> None:
        amount = self._require_amount(record)
        self._require_unused(record)

        account = self.account_repo.get_or_create(record.client_id)
        if not account.locked and account.available < amount:
            raise InsufficientFunds(record.tx_id, record.client_id, amount, account.available)

        self.account_repo.apply_delta(record.client_id, -amount, ZERO)
        self._record_entry(record, amount)

    def _dispute(self, record: TransactionRecord) -> None:
        entry = self._referenced_entry(record)
        disputable = entry.status == EntryStatus.normal or (
            self.allow_redispute and entry.status == EntryStatus.resolved
        )
        if not disputable:
            raise InvalidState(record.tx_id, record.client_id, entry.status.value, "dispute")

        self.account_repo.apply_delta(record.client_id, -entry.amount, entry.amount)
        entry.status = EntryStatus.disputed

    def _resolve(self, record: TransactionRecord) -> None:
        entry = self._referenced_entry(record)
        if entry.status != EntryStatus.disputed:
            raise InvalidState(record.tx_id, record.client_id, entry.status.value, "resolve")

        self.account_repo.apply_delta(record.client_id, entry.amount, -entry.amount)
        entry.status = EntryStatus.resolved

    def _chargeback(self, record: TransactionRecord) -> None:
        entry = self._referenced_entry(record)
        if entry.status != EntryStatus.disputed:
            raise InvalidState(record.tx_id, record.client_id, entry.status.value, "charge back")

        self.account_repo.apply_delta(record.client_id, ZERO, -entry.amount)
        self.account_repo.lock(record.client_id)
        entry.status = EntryStatus.charged_back

        logger.info(
            "Account locked after chargeback",
            tx_id=record.tx_id,
            client_id=record.client_id,
            amount=str(entry.amount)
        )

    def _require_amount(self, record: TransactionRecord) -> Decimal:
        if record.amount is None or record.amount <= ZERO:
            raise InvalidAmount(record.tx_id, record.client_id, record.amount)
        return record.amount

    def _require_unused(self, record: TransactionRecord) -> None:
        if self.ledger_repo.get(record.tx_id) is not None:
            raise DuplicateTransaction(record.tx_id, record.client_id)

    def _referenced_entry(self, record: TransactionRecord) -> LedgerEntry:
        entry = self.ledger_repo.get(record.tx_id)
        if entry is None:
            raise UnknownTransaction(record.tx_id, record.client_id)
        if entry.client_id != record.client_id:
            raise ClientMismatch(record.tx_id, record.client_id, entry.client_id)
        return entry

    def _record_entry(self, record: TransactionRecord, amount: Decimal) -> None:
        self.ledger_repo.add(LedgerEntry(
            tx_id=record.tx_id,
            client_id=record.client_id,
            type=record.type,
            amount=amount
        ))


# Factory function; every run gets its own stores
def get_ledger_service(settings: Settings) -> LedgerService:
    return LedgerService(
        InMemoryAccountRepository(max_balance=settings.max_balance),
        InMemoryLedgerRepository(),
        allow_redispute=settings.allow_redispute
    )
