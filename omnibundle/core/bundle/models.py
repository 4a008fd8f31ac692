"""
Bundle Models

State snapshots handed out by the coordinator, and the relay's view of a
bundle. Every dataclass here is frozen: callers only ever see immutable
snapshots, the coordinator swaps in new instances when something changes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..chains import NATIVE_TOKEN, explorer_tx_url
from ..execution.models import IN_FLIGHT_STATUSES, TERMINAL_STATUSES, ChainStatus


class BundleStatus(str, Enum):
    """Overall status of one logical multi-chain operation."""
    IDLE = "idle"
    CREATING = "creating"                  # Handed to the relay, waiting for a bundle id
    AWAITING_PAYMENT = "awaiting_payment"  # Relay quoted gas, no payment chain committed
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionMode(str, Enum):
    BUNDLED = "bundled"        # Relay executes every chain
    SEQUENTIAL = "sequential"  # One signed transaction per chain, in input order


@dataclass(frozen=True)
class ChainState:
    chain_id: int
    status: ChainStatus = ChainStatus.PENDING
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    project_id: Optional[int] = None

    # Failed because the user walked away, not because something broke
    cancelled: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def outcome(self) -> str:
        """Status as shown to a user: cancelled chains read as cancelled."""
        if self.status == ChainStatus.FAILED and self.cancelled:
            return "cancelled"
        return self.status.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "status": self.status.value,
            "outcome": self.outcome,
            "txHash": self.tx_hash,
            "explorerUrl": explorer_tx_url(self.chain_id, self.tx_hash) if self.tx_hash else None,
            "error": self.error,
            "projectId": self.project_id,
        }


@dataclass(frozen=True)
class PaymentOption:
    """One chain's quote for covering the gas of the whole bundle."""
    chain_id: int
    amount: int
    token: str = NATIVE_TOKEN
    estimated_gas: Optional[int] = None

    @classmethod
    def from_relay(cls, payload: Dict[str, Any]) -> "PaymentOption":
        estimated = payload.get("estimatedGas")
        return cls(
            chain_id=int(payload["chainId"]),
            amount=int(payload["amount"]),
            token=payload.get("token") or NATIVE_TOKEN,
            estimated_gas=int(estimated) if estimated is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "amount": str(self.amount),
            "token": self.token,
            "estimatedGas": str(self.estimated_gas) if self.estimated_gas is not None else None,
        }


@dataclass(frozen=True)
class BundleState:
    handle: str
    status: BundleStatus = BundleStatus.IDLE
    chain_states: Tuple[ChainState, ...] = ()
    mode: Optional[ExecutionMode] = None
    bundle_id: Optional[str] = None  # Relay bundle UUID, bundled mode only
    payment_options: Tuple[PaymentOption, ...] = ()
    selected_payment_chain: Optional[int] = None
    payment_tx_hash: Optional[str] = None
    error: Optional[str] = None
    closed: bool = False  # Cancelled by the caller; no further updates are applied

    @property
    def chain_ids(self) -> List[int]:
        return [state.chain_id for state in self.chain_states]

    def chain(self, chain_id: int) -> Optional[ChainState]:
        for state in self.chain_states:
            if state.chain_id == chain_id:
                return state
        return None

    @property
    def is_final(self) -> bool:
        return self.status in (BundleStatus.COMPLETED, BundleStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handle": self.handle,
            "bundleId": self.bundle_id,
            "status": self.status.value,
            "mode": self.mode.value if self.mode else None,
            "chainStates": [state.to_dict() for state in self.chain_states],
            "paymentOptions": [option.to_dict() for option in self.payment_options],
            "selectedPaymentChain": self.selected_payment_chain,
            "paymentTxHash": self.payment_tx_hash,
            "error": self.error,
            "closed": self.closed,
        }


# ---------------------------------------------------------------------------
# Relay wire shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RelayTransaction:
    """One chain's call as submitted to the bundling relay."""
    chain_id: int
    target: str
    data: str
    value: int = 0
    gas_limit: Optional[int] = None

    def to_relay(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "chain": self.chain_id,
            "target": self.target,
            "data": self.data,
            "value": str(self.value),
        }
        if self.gas_limit is not None:
            payload["gas_limit"] = self.gas_limit
        return payload


@dataclass(frozen=True)
class PrepaidBundle:
    bundle_id: str
    tx_ids: Tuple[str, ...]
    payment_options: Tuple[PaymentOption, ...]
    expires_at: Optional[int] = None


@dataclass(frozen=True)
class RelayChainUpdate:
    chain_id: int
    status: ChainStatus
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    project_id: Optional[int] = None
    tx_id: Optional[str] = None


@dataclass(frozen=True)
class RelayBundleUpdate:
    bundle_id: str
    chains: Tuple[RelayChainUpdate, ...] = field(default_factory=tuple)
    payment_received: bool = False

    @property
    def chain_ids(self) -> List[int]:
        return [update.chain_id for update in self.chains]
