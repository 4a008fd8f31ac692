"""
Bundle Coordinator

Owns every BundleState and ChainState. Decides how a multi-chain operation
runs and keeps one observable status per bundle:

- Sequential: chains run one after another in input order through the
  Single-Chain Executor. A failed chain never stops the rest.
- Bundled: one call per chain is handed to the relay, which executes them
  concurrently. Per-chain updates arrive in any order and are mapped onto
  ChainState by chain ID.

Callers only ever see frozen snapshots (get_state / subscribe). After
cancel() no update of any kind is applied to the bundle.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from eth_utils import keccak, to_hex

from ..chains import is_native_token
from ...config import Settings, settings as default_settings
from ...logging_config import bundle_log_context
from ..execution.call_builder import CallBuilder
from ..execution.defaults import synchronized_start_time
from ..execution.errors import (
    AcknowledgementRequired,
    BundleStateError,
    InsufficientBalance,
    MalformedParameters,
    RelayInconsistency,
    RemoteServiceError,
    SubmissionFailed,
    UnknownBundle,
    UserRejected,
    is_user_rejection,
    truncate_message,
)
from ..execution.executor import SingleChainExecutor
from ..execution.forwarder import ERC2771Forwarder
from ..execution.models import (
    ChainExecutionResult,
    ChainStatus,
    OperationRequest,
    PreparedCall,
)
from ..execution.params import PayParams
from ..execution.signers import SigningBackend, WalletSigner, describe_backend
from ..execution.terminal_resolver import TerminalResolver
from ..verification.engine import correct_request, verify_request
from ..verification.models import SubmissionGate, VerificationContext
from .models import (
    BundleState,
    BundleStatus,
    ChainState,
    ExecutionMode,
    PaymentOption,
    RelayBundleUpdate,
    RelayTransaction,
)
from .payment import RankedPaymentOption, default_payment_chain, rank_payment_options
from .state import bundle_status, can_transition

if TYPE_CHECKING:
    from ...providers.relayr import RelayrProvider
    from ...providers.rpc import RpcProvider


logger = logging.getLogger(__name__)


Subscriber = Callable[[BundleState], Awaitable[None]]


@dataclass
class CoordinatorContext:
    """Collaborators the coordinator is built with; nothing is read from globals."""
    backend: SigningBackend
    rpc: "RpcProvider"
    relay: "RelayrProvider"
    settings: Settings = field(default_factory=lambda: default_settings)
    clock: Callable[[], float] = time.time


@dataclass
class _BundleRecord:
    request: OperationRequest
    state: BundleState
    phase: BundleStatus = BundleStatus.IDLE
    balances: Dict[int, int] = field(default_factory=dict)
    subscribers: List[Subscriber] = field(default_factory=list)
    tasks: List[asyncio.Task] = field(default_factory=list)
    changed: asyncio.Condition = field(default_factory=asyncio.Condition)


class BundleCoordinator:
    """
    Orchestrates one logical operation across its target chains.

    Usage:
        coordinator = BundleCoordinator(CoordinatorContext(backend, rpc, relay))
        handle = await coordinator.submit(request, acknowledged=True)
        coordinator.subscribe(handle, on_change)
        ...
        await coordinator.select_payment_chain(handle, 8453)
        final = await coordinator.wait(handle)
    """

    def __init__(self, context: CoordinatorContext):
        self.context = context
        self.backend = context.backend
        self.rpc = context.rpc
        self.relay = context.relay
        self.settings = context.settings
        self._clock = context.clock
        self._bundles: Dict[str, _BundleRecord] = {}

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    async def submit(
        self,
        request: OperationRequest,
        *,
        acknowledged: bool = False,
        bundled: Optional[bool] = None,
        balances: Optional[Mapping[int, int]] = None,
    ) -> str:
        """
        Verify ``request`` and start executing it.

        Args:
            request: The operation to run
            acknowledged: The caller accepted the doubts verification raised
            bundled: Force (True) or decline (False) the bundling relay;
                defaults to settings.prefer_bundling
            balances: Known native balances per chain; missing chains are
                read over RPC when the operation spends native currency

        Returns:
            Bundle handle

        Raises:
            AcknowledgementRequired: Doubts were raised and not acknowledged
            InsufficientBalance: A chain lacks the native amount being spent
        """
        request = self._with_synchronized_start(request)

        requirements = self._native_requirements(request)
        known = await self._read_balances(requirements.keys(), balances or {})

        doubts = verify_request(request, VerificationContext(balances=known, now=int(self._clock())))
        gate = SubmissionGate.for_doubts(doubts)
        if not gate.allows(acknowledged):
            raise AcknowledgementRequired(doubts, gate)

        for chain_id, required in requirements.items():
            available = known.get(chain_id)
            if available is not None and available < required:
                raise InsufficientBalance(chain_id, required, available)

        request, corrections = correct_request(request)
        for correction in corrections:
            logger.warning(
                f"Corrected {correction.field} from {correction.original} to {correction.corrected} "
                f"({correction.contract})"
            )

        mode = self.choose_mode(request, bundled)
        handle = uuid.uuid4().hex
        chain_states = tuple(
            ChainState(chain_id=chain_id, project_id=request.project_ids.get(chain_id) or None)
            for chain_id in request.chain_ids
        )
        record = _BundleRecord(
            request=request,
            state=BundleState(handle=handle, chain_states=chain_states, mode=mode),
            balances=dict(known),
        )
        self._bundles[handle] = record

        logger.info(
            f"Submitted {request.kind.value} bundle {handle} on chains {list(request.chain_ids)} "
            f"({mode.value}, {describe_backend(self.backend)} signer)"
        )
        runner = self._run_bundled if mode == ExecutionMode.BUNDLED else self._run_sequential
        self._spawn(record, runner(record))
        return handle

    def choose_mode(self, request: OperationRequest, bundled: Optional[bool] = None) -> ExecutionMode:
        """Bundled only for multi-chain operations that don't spend the caller's own funds."""
        if not request.is_multichain or request.kind.moves_user_funds:
            return ExecutionMode.SEQUENTIAL
        prefer = self.settings.prefer_bundling if bundled is None else bundled
        return ExecutionMode.BUNDLED if prefer else ExecutionMode.SEQUENTIAL

    def get_state(self, handle: str) -> BundleState:
        return self._get(handle).state

    def subscribe(self, handle: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for every new snapshot; returns an unsubscribe function."""
        record = self._get(handle)
        record.subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in record.subscribers:
                record.subscribers.remove(callback)

        return unsubscribe

    def ranked_payment_options(
        self,
        handle: str,
        balances: Optional[Mapping[int, int]] = None,
    ) -> List[RankedPaymentOption]:
        record = self._get(handle)
        return rank_payment_options(record.state.payment_options, balances or record.balances)

    async def select_payment_chain(self, handle: str, chain_id: int) -> BundleState:
        """
        Commit ``chain_id`` as the bundle's payment chain and pay the relay.

        On failure the bundle stays awaiting payment with the error set and
        no chain selected, so the caller can choose again.

        Raises:
            BundleStateError: The bundle is not awaiting payment
            MalformedParameters: The relay offered no option on ``chain_id``
            UserRejected: The user dismissed the payment prompt
            SubmissionFailed: Signing or handing over the payment failed
        """
        record = self._get(handle)
        if record.state.closed or record.phase != BundleStatus.AWAITING_PAYMENT:
            raise BundleStateError(f"Bundle {handle} is not awaiting payment")

        option = next((o for o in record.state.payment_options if o.chain_id == chain_id), None)
        if option is None:
            raise MalformedParameters(f"No payment option for chain {chain_id}", field="chain_id")

        with bundle_log_context(handle, record.request.kind.value):
            await self._pay(record, option)
        return record.state

    async def apply_relay_update(self, handle: str, update: RelayBundleUpdate) -> BundleState:
        """
        Map a relay status report onto the bundle's chain states.

        Updates for a closed bundle or another bundle ID are discarded. A
        report naming a chain outside the target set fails every open chain
        and sets the bundle error. If every chain had already confirmed, the
        bundle stays completed and subscribers see the error.
        """
        record = self._get(handle)
        if record.state.closed:
            logger.debug(f"Discarding relay update for closed bundle {handle}")
            return record.state
        if update.bundle_id != record.state.bundle_id:
            logger.debug(f"Discarding relay update for {update.bundle_id} on bundle {handle}")
            return record.state

        expected = set(record.request.chain_ids)
        unknown = [chain_id for chain_id in update.chain_ids if chain_id not in expected]
        if unknown:
            error = RelayInconsistency(update.bundle_id, unknown, expected)
            logger.error(str(error))
            await self._fail_open_chains(record, str(error), bundle_error=True)
            return record.state

        for chain in update.chains:
            self._transition(
                record,
                chain.chain_id,
                chain.status,
                tx_hash=chain.tx_hash,
                error=chain.error,
                project_id=chain.project_id,
            )
        if update.payment_received and record.phase == BundleStatus.AWAITING_PAYMENT:
            record.phase = BundleStatus.PROCESSING
        await self._publish(record)
        return record.state

    async def cancel(self, handle: str) -> BundleState:
        """
        Stop reacting to the bundle. Transactions already broadcast still
        resolve on-chain; their updates are simply no longer applied.
        """
        record = self._get(handle)
        if record.state.closed:
            return record.state

        record.state = replace(record.state, closed=True)
        current = asyncio.current_task()
        for task in record.tasks:
            if task is not current and not task.done():
                task.cancel()
        logger.info(f"Bundle {handle} closed at status {record.state.status.value}")
        await self._publish(record, force=True)
        return record.state

    async def reset(self, handle: str) -> BundleState:
        """
        Cancel, hand subscribers an empty idle state, then forget the handle.

        The returned snapshot is the last one; the handle is unknown afterwards.
        """
        record = self._get(handle)
        await self.cancel(handle)
        record.phase = BundleStatus.IDLE
        record.state = BundleState(handle=handle, closed=True)
        await self._publish(record, force=True)
        record.subscribers.clear()
        self._bundles.pop(handle, None)
        logger.debug(f"Bundle {handle} reset and released")
        return record.state

    async def wait_for_status(
        self,
        handle: str,
        statuses: Iterable[BundleStatus],
        timeout: Optional[float] = None,
    ) -> BundleState:
        """Wait until the bundle reaches one of ``statuses`` or is closed."""
        record = self._get(handle)
        targets = frozenset(statuses)

        def reached() -> bool:
            return record.state.closed or record.state.status in targets

        async with record.changed:
            await asyncio.wait_for(record.changed.wait_for(reached), timeout)
        return record.state

    async def wait(self, handle: str, timeout: Optional[float] = None) -> BundleState:
        return await self.wait_for_status(handle, (BundleStatus.COMPLETED, BundleStatus.FAILED), timeout)

    async def close(self) -> None:
        tasks = [task for record in self._bundles.values() for task in record.tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._bundles.clear()

    # ------------------------------------------------------------------
    # Sequential mode
    # ------------------------------------------------------------------

    async def _run_sequential(self, record: _BundleRecord) -> None:
        request = record.request
        with bundle_log_context(record.state.handle, request.kind.value):
            executor = SingleChainExecutor(
                self.backend,
                self.rpc,
                resolver=TerminalResolver(self.rpc),
                settings=self.settings,
            )
            await self._set_phase(record, BundleStatus.PROCESSING)

            async def on_status(result: ChainExecutionResult) -> None:
                await self._apply_result(record, result)

            for chain_id in request.chain_ids:
                if record.state.closed:
                    break
                result = await executor.execute(request, chain_id, on_status=on_status)
                await self._apply_result(record, result)

    async def _apply_result(self, record: _BundleRecord, result: ChainExecutionResult) -> None:
        changed = self._transition(
            record,
            result.chain_id,
            result.status,
            tx_hash=result.tx_hash,
            error=result.error,
            cancelled=result.cancelled,
        )
        if changed:
            await self._publish(record)

    # ------------------------------------------------------------------
    # Bundled mode
    # ------------------------------------------------------------------

    async def _run_bundled(self, record: _BundleRecord) -> None:
        with bundle_log_context(record.state.handle, record.request.kind.value):
            await self._set_phase(record, BundleStatus.CREATING)
            transactions = await self._build_relay_transactions(record)
            if not transactions:
                logger.warning(f"No chain of bundle {record.state.handle} could be built")
                return

            is_wallet = isinstance(self.backend, WalletSigner)
            try:
                if is_wallet:
                    prepaid = await self.relay.create_prepaid_bundle(self.backend.address, transactions)
                else:
                    bundle_id = await self.relay.create_balance_bundle(transactions)
            except RemoteServiceError as exc:
                logger.error(f"Relay rejected bundle {record.state.handle}: {exc}")
                await self._fail_open_chains(record, f"Relay rejected bundle: {exc}", bundle_error=True)
                return

            if record.state.closed:
                return

            if not is_wallet:
                await self._update_state(record, bundle_id=bundle_id)
                await self._set_phase(record, BundleStatus.PROCESSING)
                self._start_polling(record)
                return

            await self._update_state(record, bundle_id=prepaid.bundle_id, payment_options=prepaid.payment_options)
            if not prepaid.payment_options:
                message = f"Relay returned no payment options for prepaid bundle {prepaid.bundle_id}"
                logger.error(message)
                await self._fail_open_chains(record, message, bundle_error=True)
                return

            await self._set_phase(record, BundleStatus.AWAITING_PAYMENT)
            if self.settings.auto_select_payment_chain:
                await self._auto_select_payment(record)

    async def _build_relay_transactions(self, record: _BundleRecord) -> List[RelayTransaction]:
        """One relay transaction per buildable chain; unbuildable chains fail individually."""
        request = record.request
        resolver = TerminalResolver(self.rpc)
        forwarder = ERC2771Forwarder(self.rpc) if isinstance(self.backend, WalletSigner) else None
        limit = self.settings.error_display_length

        transactions: List[RelayTransaction] = []
        for chain_id in request.chain_ids:
            try:
                target = await resolver.resolve_target(request, chain_id)
                call = CallBuilder.build(
                    request.kind,
                    chain_id,
                    target,
                    request.params,
                    project_id=request.project_id_for(chain_id),
                    memo=request.memo,
                    synchronized_start=request.synchronized_start,
                )
                if forwarder is not None:
                    call = await forwarder.wrap(self.backend, call)
            except Exception as exc:
                logger.error(f"Could not prepare chain {chain_id} for the relay: {exc}")
                self._transition(
                    record,
                    chain_id,
                    ChainStatus.FAILED,
                    error=truncate_message(str(exc) or type(exc).__name__, limit),
                    cancelled=is_user_rejection(exc),
                )
                await self._publish(record)
                continue

            transactions.append(
                RelayTransaction(chain_id=chain_id, target=call.to, data=call.data, value=call.value)
            )
        return transactions

    async def _auto_select_payment(self, record: _BundleRecord) -> None:
        options = record.state.payment_options
        record.balances = await self._read_balances([o.chain_id for o in options], record.balances)
        chain_id = default_payment_chain(options, record.balances)
        if chain_id is None:
            logger.info(f"No affordable payment chain for bundle {record.state.handle}; waiting for a choice")
            return

        option = next(o for o in options if o.chain_id == chain_id)
        try:
            await self._pay(record, option)
        except (UserRejected, SubmissionFailed) as exc:
            logger.warning(f"Automatic payment on chain {chain_id} failed: {exc}")

    async def _pay(self, record: _BundleRecord, option: PaymentOption) -> None:
        backend = self.backend
        if not isinstance(backend, WalletSigner):
            raise BundleStateError("Only a directly connected wallet pays for a prepaid bundle")

        limit = self.settings.error_display_length
        await self._update_state(record, selected_payment_chain=option.chain_id, error=None)
        try:
            call = self._payment_call(option)
            await backend.ensure_chain(option.chain_id)
            signed_tx = await backend.sign_transaction(call)
            await self.relay.send_bundle_payment(record.state.bundle_id, option.chain_id, signed_tx)
        except Exception as exc:
            logger.warning(f"Payment for bundle {record.state.handle} on chain {option.chain_id} failed: {exc}")
            await self._update_state(
                record,
                selected_payment_chain=None,
                error=truncate_message(str(exc) or type(exc).__name__, limit),
            )
            if is_user_rejection(exc):
                raise UserRejected(str(exc)) from exc
            raise SubmissionFailed(str(exc), limit=limit) from exc

        if record.state.closed:
            return
        await self._update_state(record, payment_tx_hash=to_hex(keccak(hexstr=signed_tx)))
        logger.info(f"Bundle {record.state.handle} paid on chain {option.chain_id}")
        await self._set_phase(record, BundleStatus.PROCESSING)
        self._start_polling(record)

    def _payment_call(self, option: PaymentOption) -> PreparedCall:
        """Native quotes carry value; ERC-20 quotes become a token transfer."""
        recipient = self.settings.relayr_payment_address
        if not recipient:
            raise SubmissionFailed("No relay payment address is configured")
        if is_native_token(option.token):
            return PreparedCall(
                chain_id=option.chain_id,
                to=recipient,
                data="0x",
                value=option.amount,
                description="bundle payment",
            )
        return CallBuilder.build_transfer(option.chain_id, option.token, recipient, option.amount)

    def _start_polling(self, record: _BundleRecord) -> None:
        self._spawn(record, self._poll(record))

    async def _poll(self, record: _BundleRecord) -> None:
        handle = record.state.handle
        with bundle_log_context(handle, record.request.kind.value):
            while not record.state.closed and not record.state.is_final:
                try:
                    update = await self.relay.get_bundle_status(record.state.bundle_id)
                except RemoteServiceError as exc:
                    logger.warning(f"Status poll for bundle {handle} failed: {exc}")
                else:
                    await self.apply_relay_update(handle, update)

                if record.state.closed or record.state.is_final:
                    break
                await asyncio.sleep(self.settings.bundle_poll_interval_seconds)

    # ------------------------------------------------------------------
    # State ownership
    # ------------------------------------------------------------------

    def _transition(
        self,
        record: _BundleRecord,
        chain_id: int,
        status: ChainStatus,
        *,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
        project_id: Optional[int] = None,
        cancelled: bool = False,
    ) -> bool:
        """Apply one chain transition in place. Returns whether anything changed."""
        if record.state.closed:
            return False
        current = record.state.chain(chain_id)
        if current is None:
            return False

        if not can_transition(current.status, status):
            if current.status != status:
                logger.info(
                    f"Ignoring {current.status.value} -> {status.value} on chain {chain_id}"
                )
            return False

        updated = replace(
            current,
            status=status,
            tx_hash=tx_hash or current.tx_hash,
            error=error if error is not None else current.error,
            project_id=project_id if project_id is not None else current.project_id,
            cancelled=cancelled or current.cancelled,
        )
        if updated == current:
            return False

        if updated.status != current.status:
            logger.info(f"Chain {chain_id}: {current.status.value} -> {updated.outcome}")
        record.state = replace(
            record.state,
            chain_states=tuple(updated if s.chain_id == chain_id else s for s in record.state.chain_states),
        )
        return True

    async def _fail_open_chains(self, record: _BundleRecord, message: str, *, bundle_error: bool = False) -> None:
        """
        Fail every chain not yet confirmed or failed.

        With ``bundle_error`` the message also becomes the bundle error. The
        status stays derived from chain states, so a bundle whose chains all
        confirmed stays completed and carries the error.
        """
        if record.state.closed:
            return
        display = truncate_message(message, self.settings.error_display_length)
        for state in record.state.chain_states:
            if not state.is_terminal:
                self._transition(record, state.chain_id, ChainStatus.FAILED, error=display)
        if bundle_error:
            record.state = replace(record.state, error=message)
        await self._publish(record)

    async def _set_phase(self, record: _BundleRecord, phase: BundleStatus) -> None:
        if record.state.closed:
            return
        record.phase = phase
        await self._publish(record)

    async def _update_state(self, record: _BundleRecord, **changes) -> None:
        if record.state.closed:
            return
        record.state = replace(record.state, **changes)
        await self._publish(record)

    async def _publish(self, record: _BundleRecord, *, force: bool = False) -> None:
        """Recompute the derived status and hand the new snapshot to subscribers."""
        if record.state.closed and not force:
            return

        status = bundle_status(record.phase, record.state.chain_states)
        if status != record.state.status:
            logger.info(f"Bundle {record.state.handle}: {record.state.status.value} -> {status.value}")
            record.state = replace(record.state, status=status)

        snapshot = record.state
        for callback in list(record.subscribers):
            try:
                await callback(snapshot)
            except Exception as exc:
                logger.error(f"Bundle subscriber failed for {snapshot.handle}: {exc}")

        async with record.changed:
            record.changed.notify_all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, handle: str) -> _BundleRecord:
        record = self._bundles.get(handle)
        if record is None:
            raise UnknownBundle(handle)
        return record

    def _spawn(self, record: _BundleRecord, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(coro)
        task.add_done_callback(self._log_task_failure)
        record.tasks.append(task)

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Bundle task failed: {exc!r}")

    def _with_synchronized_start(self, request: OperationRequest) -> OperationRequest:
        """Multi-chain ruleset operations share one mustStartAtOrAfter."""
        if request.is_multichain and request.kind.uses_rulesets and request.synchronized_start is None:
            start = synchronized_start_time(int(self._clock()), self.settings.synchronized_start_delay_seconds)
            return request.with_synchronized_start(start)
        return request

    @staticmethod
    def _native_requirements(request: OperationRequest) -> Dict[int, int]:
        """Native wei each chain spends from the caller's balance."""
        params = request.params
        if not isinstance(params, PayParams):
            return {}
        required = params.amount if is_native_token(params.token) else 0
        if params.fee is not None:
            required += params.fee.amount
        if required <= 0:
            return {}
        return {chain_id: required for chain_id in request.chain_ids}

    async def _read_balances(self, chain_ids: Iterable[int], known: Mapping[int, int]) -> Dict[int, int]:
        balances = dict(known)
        for chain_id in chain_ids:
            if chain_id in balances:
                continue
            try:
                balances[chain_id] = await self.rpc.get_balance(chain_id, self.backend.address)
            except RemoteServiceError as exc:
                logger.warning(f"Could not read balance on chain {chain_id}: {exc}")
        return balances
