"""
Execution Layer Models

Operation requests, prepared calls and per-chain execution results.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import MalformedParameters
from .params import (
    AdjustTiersParams,
    CashOutParams,
    DeployRevnetParams,
    DeploySuckersParams,
    LaunchProjectParams,
    OperationParams,
    PayParams,
    QueueRulesetParams,
    UseAllowanceParams,
)


class ChainStatus(str, Enum):
    """Per-chain progress through signing, submission and confirmation."""
    PENDING = "pending"
    SIGNING = "signing"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


IN_FLIGHT_STATUSES = frozenset({ChainStatus.PENDING, ChainStatus.SIGNING, ChainStatus.SUBMITTED})
TERMINAL_STATUSES = frozenset({ChainStatus.CONFIRMED, ChainStatus.FAILED})


class OperationKind(str, Enum):
    """The fixed set of operations the orchestrator submits."""
    PAY = "pay"
    CASH_OUT = "cashOut"
    USE_ALLOWANCE = "useAllowance"
    QUEUE_RULESET = "queueRuleset"
    LAUNCH_PROJECT = "launchProject"
    DEPLOY_REVNET = "deployRevnet"
    DEPLOY_SUCKERS = "deploySuckers"
    ADJUST_TIERS = "adjustTiers"

    @property
    def moves_user_funds(self) -> bool:
        """Operations spending the caller's own balance; never relayed."""
        return self in (OperationKind.PAY, OperationKind.CASH_OUT, OperationKind.USE_ALLOWANCE)

    @property
    def uses_rulesets(self) -> bool:
        return self in (OperationKind.QUEUE_RULESET, OperationKind.LAUNCH_PROJECT)


PARAMS_FOR_KIND: Dict[OperationKind, type] = {
    OperationKind.PAY: PayParams,
    OperationKind.CASH_OUT: CashOutParams,
    OperationKind.USE_ALLOWANCE: UseAllowanceParams,
    OperationKind.QUEUE_RULESET: QueueRulesetParams,
    OperationKind.LAUNCH_PROJECT: LaunchProjectParams,
    OperationKind.DEPLOY_REVNET: DeployRevnetParams,
    OperationKind.DEPLOY_SUCKERS: DeploySuckersParams,
    OperationKind.ADJUST_TIERS: AdjustTiersParams,
}


@dataclass(frozen=True)
class OperationRequest:
    """
    One logical operation targeting one or more chains.

    ``project_ids`` maps chain ID to the project on that chain; operations that
    create a project (launchProject, deployRevnet) may leave chains out or
    map them to 0.
    """
    kind: OperationKind
    chain_ids: Tuple[int, ...]
    params: OperationParams
    project_ids: Mapping[int, int] = field(default_factory=dict)
    synchronized_start: Optional[int] = None
    memo: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "chain_ids", tuple(self.chain_ids))
        object.__setattr__(self, "project_ids", MappingProxyType(dict(self.project_ids)))

        if not self.chain_ids:
            raise MalformedParameters("An operation needs at least one target chain", field="chain_ids")
        if len(set(self.chain_ids)) != len(self.chain_ids):
            raise MalformedParameters("Target chains must be unique", field="chain_ids")

        expected = PARAMS_FOR_KIND[self.kind]
        if not isinstance(self.params, expected):
            raise MalformedParameters(
                f"{self.kind.value} expects {expected.__name__}, got {type(self.params).__name__}",
                field="params",
            )

    @property
    def is_multichain(self) -> bool:
        return len(self.chain_ids) > 1

    def project_id_for(self, chain_id: int) -> int:
        return int(self.project_ids.get(chain_id, 0))

    def with_synchronized_start(self, timestamp: int) -> "OperationRequest":
        return replace(self, synchronized_start=timestamp, project_ids=dict(self.project_ids))


@dataclass(frozen=True)
class PreparedCall:
    """An encoded contract call ready for one chain."""
    chain_id: int
    to: str
    data: str
    value: int = 0
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "to": self.to,
            "data": self.data,
            "value": str(self.value),
            "description": self.description,
        }


class AuthorizationPath(str, Enum):
    """How an ERC-20 spend was authorized for one attempt."""
    NONE = "none"                        # Native token, nothing to authorize
    PERMIT2 = "permit2"                  # Signed PermitSingle in pay metadata
    DIRECT_APPROVAL = "direct_approval"  # approve(spender, amount) on the token


@dataclass(frozen=True)
class ChainExecutionResult:
    """Outcome of one Single-Chain Executor run."""
    chain_id: int
    status: ChainStatus
    tx_hash: Optional[str] = None
    fee_tx_hash: Optional[str] = None
    error: Optional[str] = None
    cancelled: bool = False
    authorization: AuthorizationPath = AuthorizationPath.NONE
    batched: bool = False

    @property
    def is_success(self) -> bool:
        return self.status == ChainStatus.CONFIRMED

    @property
    def outcome(self) -> str:
        if self.status == ChainStatus.FAILED and self.cancelled:
            return "cancelled"
        return self.status.value
