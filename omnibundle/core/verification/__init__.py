"""
Transaction Verification

Pure checks run on a fully built operation before anything is signed:
- verify / verify_request: Ordered doubts (critical first)
- SubmissionGate: What acknowledgement the doubts require
- correct_request: Fixes near-miss canonical addresses (reported as warnings)

Usage:
    from omnibundle.core.verification import SubmissionGate, verify_request

    doubts = verify_request(request, VerificationContext(balances={1: balance}))
    gate = SubmissionGate.for_doubts(doubts)
    if not gate.allows(user_acknowledged):
        ...
"""

from .models import (
    DoubtSeverity,
    TransactionDoubt,
    GateLabel,
    SubmissionGate,
    VerificationContext,
)

from .addresses import (
    KNOWN_ADDRESSES,
    AddressCorrection,
    correct_address,
    correct_terminal_configs,
    is_valid_address,
    levenshtein,
)

from .engine import (
    verify,
    verify_request,
    correct_request,
)

__all__ = [
    # Models
    "DoubtSeverity",
    "TransactionDoubt",
    "GateLabel",
    "SubmissionGate",
    "VerificationContext",
    # Addresses
    "KNOWN_ADDRESSES",
    "AddressCorrection",
    "correct_address",
    "correct_terminal_configs",
    "is_valid_address",
    "levenshtein",
    # Engine
    "verify",
    "verify_request",
    "correct_request",
]
