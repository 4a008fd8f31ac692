"""
Verification Models

Doubts raised against a fully built parameter set, and the gate that decides
how the caller must acknowledge them before submission.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence


class DoubtSeverity(str, Enum):
    """How serious a flagged anomaly is."""
    WARNING = "warning"    # Review suggested
    CRITICAL = "critical"  # Explicit risk acceptance required


@dataclass(frozen=True)
class TransactionDoubt:
    severity: DoubtSeverity
    message: str
    field: Optional[str] = None
    technical_note: Optional[str] = None

    @property
    def is_critical(self) -> bool:
        return self.severity == DoubtSeverity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "field": self.field,
            "technicalNote": self.technical_note,
        }


class GateLabel(str, Enum):
    """Wording of the acknowledgement checkbox."""
    NONE = "none"
    REVIEW = "review"
    RISK_ACCEPTANCE = "risk_acceptance"


@dataclass(frozen=True)
class SubmissionGate:
    """
    Acknowledgement required before submission.

    Zero doubts: submit immediately. Only warnings: one review checkbox.
    Any critical doubt: the same checkbox, labelled as risk acceptance.
    Doubts are never removed to pass the gate.
    """
    requires_acknowledgement: bool
    label: GateLabel = GateLabel.NONE

    @classmethod
    def for_doubts(cls, doubts: Sequence[TransactionDoubt]) -> "SubmissionGate":
        if not doubts:
            return cls(requires_acknowledgement=False)
        if any(doubt.is_critical for doubt in doubts):
            return cls(requires_acknowledgement=True, label=GateLabel.RISK_ACCEPTANCE)
        return cls(requires_acknowledgement=True, label=GateLabel.REVIEW)

    def allows(self, acknowledged: bool) -> bool:
        return acknowledged or not self.requires_acknowledgement


@dataclass(frozen=True)
class VerificationContext:
    """
    Facts the engine may check parameters against.

    Everything is supplied by the caller so verification stays free of I/O
    and clock reads: ``balances`` are native balances in wei per chain,
    ``now`` is the unix time used for start-time checks.
    """
    balances: Mapping[int, int] = field(default_factory=dict)
    now: Optional[int] = None
