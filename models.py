from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_serializer, field_validator
from enum import Enum
from typing import Dict, List, Optional
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN

# Fixed-point precision for every amount and balance
AMOUNT_QUANTUM = Decimal("0.0001")

MAX_CLIENT_ID = 2**16 - 1
MAX_TX_ID = 2**32 - 1


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_EVEN)


class TransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"

    @property
    def carries_amount(self) -> bool:
        return self in (TransactionType.deposit, TransactionType.withdrawal)


class EntryStatus(str, Enum):
    normal = "normal"
    disputed = "disputed"
    resolved = "resolved"
    charged_back = "charged_back"


class TransactionRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: TransactionType = Field(..., description="Transaction type")
    client_id: int = Field(
        ...,
        alias="client",
        ge=0,
        le=MAX_CLIENT_ID,
        description="Client (account) identifier"
    )
    tx_id: int = Field(
        ...,
        alias="tx",
        ge=0,
        le=MAX_TX_ID,
        description="Transaction identifier, unique among deposits and withdrawals"
    )
    amount: Optional[Decimal] = Field(
        default=None,
        description="Amount for deposits and withdrawals, four decimal places"
    )

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v, info: ValidationInfo):
        if v is None:
            return v
        # dispute, resolve and chargeback take the amount from the referenced entry
        transaction_type = info.data.get("type")
        if transaction_type is not None and not transaction_type.carries_amount:
            return None
        if not v.is_finite():
            raise ValueError("Amount must be a finite number")
        try:
            return quantize_amount(v)
        except InvalidOperation:
            # too many integer digits to hold four decimal places exactly
            raise ValueError("Amount out of range")


class Account(BaseModel):
    client_id: int
    available: Decimal = Decimal("0")
    held: Decimal = Decimal("0")
    locked: bool = False

    @property
    def total(self) -> Decimal:
        return self.available + self.held


class LedgerEntry(BaseModel):
    tx_id: int
    client_id: int
    type: TransactionType
    amount: Decimal
    status: EntryStatus = EntryStatus.normal


class AccountSnapshot(BaseModel):
    client: int = Field(..., description="Client identifier")
    available: Decimal = Field(..., description="Funds available for withdrawal")
    held: Decimal = Field(..., description="Funds held by open disputes")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="True once a chargeback has occurred")

    @classmethod
    def from_account(cls, account: Account) -> "AccountSnapshot":
        return cls(
            client=account.client_id,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked,
        )

    @field_serializer("available", "held", "total")
    def render_fixed_point(self, value: Decimal) -> str:
        return f"{quantize_amount(value):.4f}"


class ApplyOutcome(BaseModel):
    tx_id: int
    client_id: int
    type: TransactionType
    applied: bool
    error_code: Optional[str] = None
    detail: Optional[str] = None


class LedgerStats(BaseModel):
    processed: int = 0
    applied: int = 0
    rejected: int = 0
    rejections: Dict[str, int] = Field(default_factory=dict, description="Rejected records by error code")

    def record(self, outcome: ApplyOutcome) -> None:
        self.processed += 1
        if outcome.applied:
            self.applied += 1
        else:
            self.rejected += 1
            self.rejections[outcome.error_code] = self.rejections.get(outcome.error_code, 0) + 1


class TransactionBatch(BaseModel):
    transactions: List[TransactionRecord] = Field(..., description="Transactions in application order")


class LedgerReport(BaseModel):
    accounts: List[AccountSnapshot] = Field(..., description="Final account balances")
    stats: LedgerStats = Field(..., description="Per-record outcome counters")
    dropped: int = Field(0, description="Malformed input rows dropped before reaching the ledger")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(default_factory=datetime.now)
