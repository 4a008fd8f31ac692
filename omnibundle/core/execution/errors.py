"""
Error taxonomy for building, authorizing and submitting chain calls.

Per-chain errors (everything except MalformedParameters, RelayInconsistency
and the submission gate errors) end one chain's run and never abort sibling
chains.
"""

import re
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence

if TYPE_CHECKING:
    from ..verification.models import SubmissionGate, TransactionDoubt


# Message fragments wallets use when the user dismisses a prompt
REJECTION_PATTERNS = ("rejected", "denied", "cancelled", "User rejected")

_REJECTION_RE = re.compile("|".join(re.escape(p) for p in REJECTION_PATTERNS))


def is_user_rejection(error: Any) -> bool:
    """True when an error's text matches a wallet rejection/denial pattern."""
    if isinstance(error, UserRejected):
        return True
    return bool(_REJECTION_RE.search(str(error)))


def truncate_message(message: str, limit: int = 100) -> str:
    message = message.strip()
    if len(message) <= limit:
        return message
    return message[: max(limit - 3, 0)] + "..."


class OmnibundleError(Exception):
    """Base exception for orchestration errors."""
    pass


class RemoteServiceError(OmnibundleError):
    """A remote collaborator (RPC node, relay, managed wallet) failed."""
    pass


class MalformedParameters(OmnibundleError):
    """Parameters are structurally incomplete; never retried."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class TerminalNotFound(OmnibundleError):
    """No terminal or controller could be resolved on one chain."""

    def __init__(self, chain_id: int, project_id: int, token: Optional[str] = None, reason: str = ""):
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"No terminal found for project {project_id} on chain {chain_id}"
            f" accepting {token or 'the requested token'}{detail}"
        )
        self.chain_id = chain_id
        self.project_id = project_id
        self.token = token


class AllowanceSigningFailed(OmnibundleError):
    """The Permit2 signature step threw; recoverable through direct approval."""
    pass


class AllowanceApprovalFailed(OmnibundleError):
    """An on-chain approval could not be submitted or reverted."""
    pass


class UserRejected(OmnibundleError):
    """The user dismissed a signature or transaction prompt."""
    pass


Cancelled = UserRejected


class SubmissionFailed(OmnibundleError):
    """Submitting or confirming a chain's transaction failed."""

    def __init__(self, message: str, *, limit: int = 100):
        super().__init__(message)
        self.display_message = truncate_message(message, limit)


class RelayInconsistency(OmnibundleError):
    """The relay reported chains outside the request's target set."""

    def __init__(self, bundle_id: str, unknown_chain_ids: Sequence[int], expected: Iterable[int]):
        self.bundle_id = bundle_id
        self.unknown_chain_ids = list(unknown_chain_ids)
        self.expected_chain_ids = sorted(expected)
        super().__init__(
            f"Relay bundle {bundle_id} reported chain(s) {self.unknown_chain_ids} "
            f"outside the target set {self.expected_chain_ids}"
        )


class InsufficientBalance(OmnibundleError):
    def __init__(self, chain_id: int, required: int, available: int):
        super().__init__(
            f"Insufficient balance on chain {chain_id}: need {required} wei, have {available} wei"
        )
        self.chain_id = chain_id
        self.required = required
        self.available = available


class AcknowledgementRequired(OmnibundleError):
    """Doubts were found and the caller has not acknowledged them."""

    def __init__(self, doubts: "List[TransactionDoubt]", gate: "SubmissionGate"):
        super().__init__(f"{len(doubts)} doubt(s) must be acknowledged before submission")
        self.doubts = doubts
        self.gate = gate


class UnknownBundle(OmnibundleError):
    def __init__(self, handle: str):
        super().__init__(f"Unknown bundle handle: {handle}")
        self.handle = handle


class BundleStateError(OmnibundleError):
    """The requested action does not fit the bundle's current status."""
    pass
