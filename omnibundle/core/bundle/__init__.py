"""
Bundle Coordination

Runs one logical operation across several chains and keeps a single
observable status for it:
- BundleCoordinator: Sequential or relay-bundled execution, payment selection,
  relay status mapping, cancellation
- bundle_status: The derived status a caller sees
- rank_payment_options: Cheapest affordable payment chain first

Usage:
    from omnibundle.core.bundle import BundleCoordinator, CoordinatorContext

    coordinator = BundleCoordinator(CoordinatorContext(backend, rpc, relay))
    handle = await coordinator.submit(request, acknowledged=True)
    state = await coordinator.wait(handle, timeout=600)
"""

from .models import (
    BundleStatus,
    ExecutionMode,
    ChainState,
    PaymentOption,
    BundleState,
    RelayTransaction,
    PrepaidBundle,
    RelayChainUpdate,
    RelayBundleUpdate,
)

from .state import (
    CHAIN_TRANSITIONS,
    can_transition,
    aggregate_status,
    bundle_status,
)

from .payment import (
    RankedPaymentOption,
    is_affordable,
    rank_payment_options,
    default_payment_chain,
)

from .coordinator import (
    BundleCoordinator,
    CoordinatorContext,
)

__all__ = [
    # Models
    "BundleStatus",
    "ExecutionMode",
    "ChainState",
    "PaymentOption",
    "BundleState",
    "RelayTransaction",
    "PrepaidBundle",
    "RelayChainUpdate",
    "RelayBundleUpdate",
    # State
    "CHAIN_TRANSITIONS",
    "can_transition",
    "aggregate_status",
    "bundle_status",
    # Payment
    "RankedPaymentOption",
    "is_affordable",
    "rank_payment_options",
    "default_payment_chain",
    # Coordinator
    "BundleCoordinator",
    "CoordinatorContext",
]
