"""
Single-chain executor.

Drives one chain's operation through pending -> signing -> submitted ->
confirmed | failed:
- Resolve the target contract
- Switch the wallet to the chain (wallet backends only)
- Authorize ERC-20 spends (Permit2, falling back to direct approval)
- Submit the primary call, plus the protocol fee call when there is one
- Wait for the receipt

Per-chain errors never escape ``execute``; they end up in the returned
ChainExecutionResult so sibling chains are unaffected.
"""

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple

from ..chains import NATIVE_TOKEN, is_native_token
from ...config import Settings, settings as default_settings
from ...logging_config import chain_log_context
from .call_builder import CallBuilder
from .errors import SubmissionFailed, is_user_rejection, truncate_message
from .models import (
    AuthorizationPath,
    ChainExecutionResult,
    ChainStatus,
    OperationKind,
    OperationRequest,
    PreparedCall,
)
from .params import PayParams
from .permit import PermitSigner
from .signers import SigningBackend
from .terminal_resolver import TerminalResolver

if TYPE_CHECKING:
    from ...providers.rpc import RpcProvider


logger = logging.getLogger(__name__)


StatusCallback = Callable[[ChainExecutionResult], Awaitable[None]]


class SingleChainExecutor:
    """
    Runs one operation on one chain with a given signing backend.

    A resolver is passed in so that chains of the same operation flow share
    its cache; a fresh one is created otherwise.
    """

    def __init__(
        self,
        backend: SigningBackend,
        rpc: "RpcProvider",
        *,
        resolver: Optional[TerminalResolver] = None,
        permit_signer: Optional[PermitSigner] = None,
        settings: Optional[Settings] = None,
    ):
        self.backend = backend
        self.rpc = rpc
        self.settings = settings or default_settings
        self.resolver = resolver or TerminalResolver(rpc)
        self.permit_signer = permit_signer or PermitSigner(
            backend,
            rpc,
            expiration_s=self.settings.permit_expiration_seconds,
            sig_deadline_s=self.settings.permit_sig_deadline_seconds,
        )

    async def execute(
        self,
        request: OperationRequest,
        chain_id: int,
        *,
        on_status: Optional[StatusCallback] = None,
    ) -> ChainExecutionResult:
        """
        Execute ``request`` on ``chain_id``.

        Args:
            request: The operation being executed
            chain_id: One of ``request.chain_ids``
            on_status: Awaited with each intermediate result (signing, submitted)

        Returns:
            Final ChainExecutionResult (confirmed or failed)
        """
        with chain_log_context(chain_id):
            result = ChainExecutionResult(chain_id=chain_id, status=ChainStatus.SIGNING)
            await self._emit(on_status, result)

            try:
                call, fee_call, authorization = await self._prepare(request, chain_id)
                result = replace(result, authorization=authorization)
                tx_hash, fee_tx_hash, batched, fee_error = await self._submit(call, fee_call)
            except Exception as exc:
                return self._failure(result, exc)

            result = replace(
                result,
                status=ChainStatus.SUBMITTED,
                tx_hash=tx_hash,
                fee_tx_hash=fee_tx_hash,
                batched=batched,
                error=fee_error,
            )
            await self._emit(on_status, result)

            try:
                receipt = await self.rpc.wait_for_receipt(
                    chain_id,
                    tx_hash,
                    timeout_s=self.settings.receipt_timeout_seconds,
                    poll_interval_s=self.settings.receipt_poll_interval_seconds,
                )
            except Exception as exc:
                return self._failure(result, exc)

            if not receipt.success:
                return self._failure(result, SubmissionFailed(f"Transaction {tx_hash} reverted"))

            logger.info(f"{request.kind.value} confirmed on chain {chain_id}: {tx_hash}")
            return replace(result, status=ChainStatus.CONFIRMED)

    async def _prepare(
        self,
        request: OperationRequest,
        chain_id: int,
    ) -> Tuple[PreparedCall, Optional[PreparedCall], AuthorizationPath]:
        target = await self.resolver.resolve_target(request, chain_id)
        await self.backend.ensure_chain(chain_id)

        params = request.params
        metadata = None
        authorization = AuthorizationPath.NONE
        fee_call = None

        if request.kind == OperationKind.PAY and isinstance(params, PayParams):
            if not is_native_token(params.token):
                attempt = await self.permit_signer.authorize(chain_id, params.token, target, params.amount)
                authorization = attempt.path
                metadata = attempt.metadata
            if params.fee is not None and params.fee.amount > 0:
                fee_terminal = await self.resolver.resolve_terminal(chain_id, params.fee.project_id, NATIVE_TOKEN)
                fee_call = CallBuilder.build_fee_payment(chain_id, fee_terminal, params.fee)

        call = CallBuilder.build(
            request.kind,
            chain_id,
            target,
            params,
            project_id=request.project_id_for(chain_id),
            memo=request.memo,
            synchronized_start=request.synchronized_start,
            metadata=metadata,
        )
        return call, fee_call, authorization

    async def _submit(
        self,
        call: PreparedCall,
        fee_call: Optional[PreparedCall],
    ) -> Tuple[str, Optional[str], bool, Optional[str]]:
        """
        Returns (tx_hash, fee_tx_hash, batched, fee_error).

        With a fee call: one batched submission when the backend supports it,
        otherwise primary then fee. A failed primary raises before the fee
        is sent.
        """
        if fee_call is None:
            return await self.backend.send_transaction(call), None, False, None

        if await self.backend.supports_batching(call.chain_id):
            tx_hash = await self.backend.send_calls(call.chain_id, [call, fee_call])
            logger.info(f"Submitted primary and fee calls as one batch on chain {call.chain_id}")
            return tx_hash, tx_hash, True, None

        tx_hash = await self.backend.send_transaction(call)
        try:
            fee_tx_hash = await self.backend.send_transaction(fee_call)
        except Exception as exc:
            # The primary is already broadcast; report the fee failure alongside it
            logger.warning(f"Fee payment failed on chain {call.chain_id}: {exc}")
            message = truncate_message(f"Fee payment failed: {exc}", self.settings.error_display_length)
            return tx_hash, None, False, message
        return tx_hash, fee_tx_hash, False, None

    def _failure(self, result: ChainExecutionResult, exc: Exception) -> ChainExecutionResult:
        limit = self.settings.error_display_length
        if is_user_rejection(exc):
            logger.info(f"Chain {result.chain_id} cancelled by user: {exc}")
            return replace(
                result,
                status=ChainStatus.FAILED,
                cancelled=True,
                error=truncate_message(str(exc) or "Cancelled by user", limit),
            )

        logger.error(f"Chain {result.chain_id} failed: {exc}")
        return replace(
            result,
            status=ChainStatus.FAILED,
            error=truncate_message(str(exc) or type(exc).__name__, limit),
        )

    @staticmethod
    async def _emit(callback: Optional[StatusCallback], result: ChainExecutionResult) -> None:
        if callback is not None:
            await callback(result)
