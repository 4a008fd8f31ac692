"""
Bundle status derivation and per-chain transitions.

Aggregate status is never stored independently; it is recomputed from the
coordinator's phase and the chain states on every change.
"""

from typing import Dict, FrozenSet, Iterable

from ..execution.models import IN_FLIGHT_STATUSES, ChainStatus
from .models import BundleStatus, ChainState


# Forward-only; confirmed and failed are final. Relay updates may skip steps.
CHAIN_TRANSITIONS: Dict[ChainStatus, FrozenSet[ChainStatus]] = {
    ChainStatus.PENDING: frozenset({
        ChainStatus.SIGNING,
        ChainStatus.SUBMITTED,
        ChainStatus.CONFIRMED,
        ChainStatus.FAILED,
    }),
    ChainStatus.SIGNING: frozenset({
        ChainStatus.SUBMITTED,
        ChainStatus.CONFIRMED,
        ChainStatus.FAILED,
    }),
    ChainStatus.SUBMITTED: frozenset({
        ChainStatus.CONFIRMED,
        ChainStatus.FAILED,
    }),
    ChainStatus.CONFIRMED: frozenset(),
    ChainStatus.FAILED: frozenset(),
}

# Phases shown while no chain has moved yet
PRE_EXECUTION_PHASES = frozenset({
    BundleStatus.IDLE,
    BundleStatus.CREATING,
    BundleStatus.AWAITING_PAYMENT,
})


def can_transition(current: ChainStatus, new: ChainStatus) -> bool:
    """Forward move, or a same-status refresh of a chain that is still in flight."""
    if current == new:
        return current in IN_FLIGHT_STATUSES
    return new in CHAIN_TRANSITIONS[current]


def aggregate_status(chain_states: Iterable[ChainState]) -> BundleStatus:
    """
    completed iff every chain is confirmed; failed iff at least one chain
    failed and none is still pending, signing or submitted; otherwise
    processing.
    """
    statuses = [state.status for state in chain_states]
    if not statuses:
        return BundleStatus.IDLE
    if all(status == ChainStatus.CONFIRMED for status in statuses):
        return BundleStatus.COMPLETED
    in_flight = any(status in IN_FLIGHT_STATUSES for status in statuses)
    if not in_flight and any(status == ChainStatus.FAILED for status in statuses):
        return BundleStatus.FAILED
    return BundleStatus.PROCESSING


def bundle_status(phase: BundleStatus, chain_states: Iterable[ChainState]) -> BundleStatus:
    """
    Status a caller observes for the coordinator ``phase`` and chain states.

    idle/creating/awaiting_payment are refinements of processing: they show
    only while every chain that has not failed is still pending.
    """
    states = list(chain_states)
    if phase in PRE_EXECUTION_PHASES:
        untouched = all(state.status in (ChainStatus.PENDING, ChainStatus.FAILED) for state in states)
        if untouched and any(state.status == ChainStatus.PENDING for state in states):
            return phase
    return aggregate_status(states)
