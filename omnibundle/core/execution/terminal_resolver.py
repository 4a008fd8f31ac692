"""
Terminal/controller resolution.

Asks JBDirectory which terminal accepts a token for a project, falling back to
the chain's swap terminal when there is no direct route. One resolver lives
for one operation flow; its cache is never shared across operations because
terminal assignments can change between sessions.
"""

import logging
from typing import TYPE_CHECKING, Dict, Optional, Tuple

from ..chains import JB_CONTRACTS, swap_terminal_for
from .errors import RemoteServiceError, TerminalNotFound
from .models import OperationKind, OperationRequest
from .params import AdjustTiersParams, CashOutParams, PayParams, UseAllowanceParams

if TYPE_CHECKING:
    from ...providers.rpc import RpcProvider


logger = logging.getLogger(__name__)


def _is_zero(address: Optional[str]) -> bool:
    return not address or int(address, 16) == 0


class TerminalResolver:
    """Resolves the authoritative contract per (chain, project, token)."""

    def __init__(self, rpc: "RpcProvider", directory: Optional[str] = None):
        self.rpc = rpc
        self.directory = directory or JB_CONTRACTS["JBDirectory"]
        self._terminals: Dict[Tuple[int, int, str], str] = {}
        self._controllers: Dict[Tuple[int, int], str] = {}

    async def resolve_terminal(self, chain_id: int, project_id: int, token: str) -> str:
        key = (chain_id, project_id, token.lower())
        if key in self._terminals:
            return self._terminals[key]

        try:
            (terminal,) = await self.rpc.read_contract(
                chain_id,
                self.directory,
                "primaryTerminalOf(uint256,address)",
                ["uint256", "address"],
                [project_id, token],
                ["address"],
            )
        except RemoteServiceError as exc:
            raise TerminalNotFound(chain_id, project_id, token, reason=str(exc)) from exc

        if _is_zero(terminal):
            terminal = swap_terminal_for(chain_id)
            if terminal is None:
                raise TerminalNotFound(chain_id, project_id, token, reason="no swap terminal on this chain")
            logger.info(
                f"No primary terminal for project {project_id} token {token} on chain {chain_id}; "
                f"using swap terminal {terminal}"
            )

        self._terminals[key] = terminal
        return terminal

    async def resolve_controller(self, chain_id: int, project_id: int) -> str:
        key = (chain_id, project_id)
        if key in self._controllers:
            return self._controllers[key]

        try:
            (controller,) = await self.rpc.read_contract(
                chain_id,
                self.directory,
                "controllerOf(uint256)",
                ["uint256"],
                [project_id],
                ["address"],
            )
        except RemoteServiceError as exc:
            raise TerminalNotFound(chain_id, project_id, reason=f"controller lookup failed: {exc}") from exc

        if _is_zero(controller):
            raise TerminalNotFound(chain_id, project_id, reason="project has no controller")

        self._controllers[key] = controller
        return controller

    async def resolve_target(self, request: OperationRequest, chain_id: int) -> str:
        """Contract the primary call of ``request`` is sent to on ``chain_id``."""
        kind = request.kind
        params = request.params
        project_id = request.project_id_for(chain_id)

        if kind == OperationKind.PAY and isinstance(params, PayParams):
            return await self.resolve_terminal(chain_id, project_id, params.token)
        if kind == OperationKind.CASH_OUT and isinstance(params, CashOutParams):
            return await self.resolve_terminal(chain_id, project_id, params.token_to_reclaim)
        if kind == OperationKind.USE_ALLOWANCE and isinstance(params, UseAllowanceParams):
            return await self.resolve_terminal(chain_id, project_id, params.token)
        if kind == OperationKind.QUEUE_RULESET:
            return await self.resolve_controller(chain_id, project_id)
        if kind == OperationKind.LAUNCH_PROJECT:
            return JB_CONTRACTS["JBController5_1"]
        if kind == OperationKind.DEPLOY_REVNET:
            return JB_CONTRACTS["REVDeployer"]
        if kind == OperationKind.DEPLOY_SUCKERS:
            return JB_CONTRACTS["JBSuckerRegistry"]
        if kind == OperationKind.ADJUST_TIERS and isinstance(params, AdjustTiersParams):
            hook = params.hooks.get(chain_id)
            if _is_zero(hook):
                raise TerminalNotFound(chain_id, project_id, reason="no 721 tiers hook for this chain")
            return hook
        raise TerminalNotFound(chain_id, project_id, reason=f"no target rule for {kind.value}")
