"""
Transfer Models

Data carried through the two-phase pipeline:
TransferRequest -> SubmissionOutcome -> ConfirmationOutcome -> BatchResult
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .ledger_rpc import sol_to_lamports, to_decimal


@dataclass(frozen=True)
class TransferRequest:
    """One desired transfer, read-only once loaded"""
    from_keypair: str
    to_address: str
    amount_sol: Decimal
    label: Optional[str] = None

    def __post_init__(self):
        amount = to_decimal(self.amount_sol)
        # raises ValueError for negative or sub-lamport amounts
        sol_to_lamports(amount)
        object.__setattr__(self, 'amount_sol', amount)

    @property
    def lamports(self) -> int:
        return sol_to_lamports(self.amount_sol)

    @property
    def display_name(self) -> str:
        return self.label or self.to_address


class SubmissionErrorKind(Enum):
    CREDENTIAL = "credential"
    ADDRESS = "address"
    BLOCKHASH = "blockhash"
    BUILD = "build"
    REJECTED = "rejected"


class SubmissionError(Exception):
    """Per-item submission failure, never retried"""

    def __init__(self, kind: SubmissionErrorKind, message: str, request: Optional[TransferRequest] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.request = request

    def __str__(self):
        return f"[{self.kind.value}] {self.message}"


@dataclass
class SubmissionOutcome:
    """Result of submitting one TransferRequest"""
    request: TransferRequest
    signature: Optional[str] = None
    error: Optional[SubmissionError] = None
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.signature is not None and self.error is None


class ConfirmationStatus(Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"        # finalized with an on-chain error
    TIMED_OUT = "timed_out"  # attempt budget exhausted

    @property
    def confirmed(self) -> bool:
        return self is ConfirmationStatus.CONFIRMED


@dataclass
class ConfirmationOutcome:
    """Result of polling one signature"""
    signature: str
    status: ConfirmationStatus
    attempts: int
    error: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status.confirmed


@dataclass
class BatchResult:
    """Aggregate of one batch run"""
    submissions: List[SubmissionOutcome] = field(default_factory=list)
    confirmations: List[ConfirmationOutcome] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def submitted(self) -> int:
        return sum(1 for s in self.submissions if s.success)

    @property
    def submission_failed(self) -> int:
        return sum(1 for s in self.submissions if not s.success)

    @property
    def confirmed(self) -> int:
        return sum(1 for c in self.confirmations if c.confirmed)

    @property
    def unconfirmed(self) -> int:
        return len(self.confirmations) - self.confirmed

    @property
    def failed_on_chain(self) -> int:
        return sum(1 for c in self.confirmations if c.status is ConfirmationStatus.FAILED)

    @property
    def timed_out(self) -> int:
        return sum(1 for c in self.confirmations if c.status is ConfirmationStatus.TIMED_OUT)

    def to_dict(self) -> Dict:
        return {
            'submitted': self.submitted,
            'submission_failed': self.submission_failed,
            'confirmed': self.confirmed,
            'unconfirmed': self.unconfirmed,
            'failed_on_chain': self.failed_on_chain,
            'timed_out': self.timed_out,
            'elapsed_seconds': round(self.elapsed_seconds, 3),
        }
