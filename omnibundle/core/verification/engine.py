"""
Transaction Verification Engine

Inspects a fully built parameter set and flags anomalies before signing.

verify() is pure: no network, no clock, no mutation. Identical inputs give
identical doubt lists in identical order. Critical doubts come first, then
warnings, each group in discovery order. The engine errs towards warning:
false positives are acceptable, a missed zero-address beneficiary or an
over-allocated split group is not.
"""

from dataclasses import replace
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from ..chains import (
    MAX_RESERVED_PERCENT,
    MAX_UINT112,
    MAX_UINT256,
    SPLITS_TOTAL_PERCENT,
    ZERO_ADDRESS,
    chain_name,
    is_native_token,
    is_supported_chain,
)
from ..execution.models import OperationKind, OperationRequest
from ..execution.params import (
    AdjustTiersParams,
    CashOutParams,
    DeployRevnetParams,
    DeploySuckersParams,
    LaunchProjectParams,
    OperationParams,
    PayParams,
    QueueRulesetParams,
    RulesetConfig,
    TerminalConfig,
    UseAllowanceParams,
)
from .addresses import AddressCorrection, correct_address, correct_terminal_configs, is_valid_address
from .models import DoubtSeverity, TransactionDoubt, VerificationContext


MAX_REASONABLE_NATIVE = 1000 * 10**18
MAX_REASONABLE_TOKENS = 10**27
HIGH_RESERVED_PERCENT = MAX_RESERVED_PERCENT // 2
HIGH_STAGE_PERCENT = SPLITS_TOTAL_PERCENT // 2

# Operations that act on an existing project
PROJECT_SCOPED_KINDS = frozenset({
    OperationKind.PAY,
    OperationKind.CASH_OUT,
    OperationKind.USE_ALLOWANCE,
    OperationKind.QUEUE_RULESET,
    OperationKind.DEPLOY_SUCKERS,
})


def _is_zero_address(address: str) -> bool:
    return address.lower() == ZERO_ADDRESS


def _percent(value: int, total: int) -> str:
    return f"{value * 100 / total:.1f}%"


class _Collector:
    """Accumulates doubts in discovery order."""

    def __init__(self) -> None:
        self.doubts: List[TransactionDoubt] = []

    def critical(self, message: str, field: Optional[str] = None, note: Optional[str] = None) -> None:
        self.doubts.append(TransactionDoubt(DoubtSeverity.CRITICAL, message, field, note))

    def warning(self, message: str, field: Optional[str] = None, note: Optional[str] = None) -> None:
        self.doubts.append(TransactionDoubt(DoubtSeverity.WARNING, message, field, note))

    def address(
        self,
        address: Optional[str],
        field: str,
        label: str,
        *,
        allow_zero: bool = True,
        correctable: bool = False,
    ) -> None:
        """
        Format check. With ``correctable`` (fields correct_request rewrites) a
        near-miss of a known address becomes a correction warning; everywhere
        else an invalid address stays critical.
        """
        if address is None or not is_valid_address(address):
            correction = correct_address(address or "", field) if correctable else None
            if correction:
                self.correction(correction)
            else:
                self.critical(f"Invalid {label} address format", field, f'"{address}" is not a valid address')
        elif not allow_zero and _is_zero_address(address):
            self.critical(f"{label[0].upper()}{label[1:]} is zero address", field, "Funds or ownership would go to 0x0")

    def correction(self, correction: AddressCorrection) -> None:
        self.warning(
            f"Address auto-corrected to {correction.contract}",
            correction.field,
            f"{correction.original} -> {correction.corrected} (edit distance {correction.distance})",
        )

    def ordered(self) -> List[TransactionDoubt]:
        return [d for d in self.doubts if d.is_critical] + [d for d in self.doubts if not d.is_critical]


def verify(
    kind: OperationKind,
    params: OperationParams,
    *,
    chain_ids: Sequence[int] = (),
    project_ids: Optional[Mapping[int, int]] = None,
    synchronized_start: Optional[int] = None,
    context: Optional[VerificationContext] = None,
) -> List[TransactionDoubt]:
    """
    Flag anomalies in an operation's parameters.

    Args:
        kind: Operation kind
        params: Typed payload for ``kind``
        chain_ids: Target chains, in request order
        project_ids: Project per chain
        synchronized_start: Shared ruleset start time, if any
        context: Balances and current time, when the caller knows them

    Returns:
        Doubts, critical first
    """
    context = context or VerificationContext()
    project_ids = project_ids or {}
    out = _Collector()

    _check_chains(out, chain_ids)
    if kind in PROJECT_SCOPED_KINDS:
        for chain_id in chain_ids:
            if int(project_ids.get(chain_id, 0)) <= 0:
                out.critical(
                    f"Invalid project ID on {chain_name(chain_id)}",
                    "project_ids",
                    "Project ID must be a positive integer",
                )

    if isinstance(params, PayParams):
        _check_pay(out, params, chain_ids, context)
    elif isinstance(params, CashOutParams):
        _check_cash_out(out, params)
    elif isinstance(params, UseAllowanceParams):
        _check_use_allowance(out, params)
    elif isinstance(params, QueueRulesetParams):
        _check_rulesets(out, params.rulesets, context)
    elif isinstance(params, LaunchProjectParams):
        _check_launch(out, params, context)
    elif isinstance(params, DeployRevnetParams):
        _check_revnet(out, params)
    elif isinstance(params, DeploySuckersParams):
        _check_suckers(out, params)
    elif isinstance(params, AdjustTiersParams):
        _check_tiers(out, params, chain_ids)

    if synchronized_start is not None and context.now is not None and 0 < synchronized_start < context.now:
        out.warning("Synchronized start time is in the past", "synchronized_start")

    return out.ordered()


def verify_request(
    request: OperationRequest,
    context: Optional[VerificationContext] = None,
) -> List[TransactionDoubt]:
    return verify(
        request.kind,
        request.params,
        chain_ids=request.chain_ids,
        project_ids=request.project_ids,
        synchronized_start=request.synchronized_start,
        context=context,
    )


def correct_request(request: OperationRequest) -> Tuple[OperationRequest, List[AddressCorrection]]:
    """Copy of ``request`` with near-miss terminal and token addresses corrected."""
    params = request.params
    if not isinstance(params, (LaunchProjectParams, DeployRevnetParams)):
        return request, []

    terminals, corrections = correct_terminal_configs(params.terminals)
    if not corrections:
        return request, []
    corrected = replace(
        request,
        params=replace(params, terminals=terminals),
        project_ids=dict(request.project_ids),
    )
    return corrected, corrections


def _check_chains(out: _Collector, chain_ids: Sequence[int]) -> None:
    for chain_id in chain_ids:
        if not is_supported_chain(chain_id):
            out.warning(f"Unsupported chain ID: {chain_id}", "chain_ids")
    if len(set(chain_ids)) != len(chain_ids):
        out.warning("Duplicate chain IDs detected", "chain_ids")


def _check_amount(
    out: _Collector,
    amount: int,
    field: str,
    label: str,
    *,
    native: bool,
) -> None:
    if amount > MAX_UINT256:
        out.critical(f"{label} exceeds maximum value", field, "Value exceeds uint256 maximum")
    elif amount == 0:
        out.warning(f"{label} is zero", field, "Zero amounts may fail or have no effect")
    elif amount > (MAX_REASONABLE_NATIVE if native else MAX_REASONABLE_TOKENS):
        out.warning(f"Large {label.lower()}: {amount}", field, "Please double-check this amount is correct")


def _check_pay(out: _Collector, params: PayParams, chain_ids: Sequence[int], context: VerificationContext) -> None:
    out.address(params.token, "token", "token")
    out.address(params.beneficiary, "beneficiary", "beneficiary", allow_zero=False)
    native = is_native_token(params.token)
    _check_amount(out, params.amount, "amount", "Payment amount", native=native)

    fee_amount = 0
    if params.fee is not None:
        out.address(params.fee.beneficiary, "fee.beneficiary", "fee beneficiary")
        fee_amount = params.fee.amount

    required = (params.amount if native else 0) + fee_amount
    for chain_id in chain_ids:
        balance = context.balances.get(chain_id)
        if balance is not None and balance < required:
            out.critical(
                f"Insufficient balance on {chain_name(chain_id)}",
                "amount",
                f"Need {required} wei, have {balance} wei",
            )


def _check_cash_out(out: _Collector, params: CashOutParams) -> None:
    out.address(params.holder, "holder", "holder")
    out.address(params.beneficiary, "beneficiary", "beneficiary", allow_zero=False)
    out.address(params.token_to_reclaim, "token_to_reclaim", "token to reclaim")
    _check_amount(out, params.cash_out_count, "cash_out_count", "Cash out count", native=False)


def _check_use_allowance(out: _Collector, params: UseAllowanceParams) -> None:
    out.address(params.token, "token", "token")
    out.address(params.beneficiary, "beneficiary", "beneficiary", allow_zero=False)
    out.address(params.fee_beneficiary, "fee_beneficiary", "fee beneficiary")
    _check_amount(out, params.amount, "amount", "Withdrawal amount", native=is_native_token(params.token))


def _check_rulesets(out: _Collector, rulesets: Sequence[RulesetConfig], context: VerificationContext) -> None:
    if not rulesets:
        out.critical("At least one ruleset configuration is required", "rulesets")
        return

    for index, config in enumerate(rulesets):
        prefix = f"rulesets[{index}]"
        if config.weight > MAX_UINT112:
            out.critical("Weight exceeds maximum value", f"{prefix}.weight", "Weight must fit in uint112")

        reserved = config.metadata.reserved_percent if config.metadata else 0
        if reserved > HIGH_RESERVED_PERCENT:
            out.warning(
                f"High reserved percentage: {_percent(reserved, MAX_RESERVED_PERCENT)}",
                f"{prefix}.metadata.reserved_percent",
            )

        start = config.must_start_at_or_after
        if context.now is not None and 0 < start < context.now:
            out.warning("Ruleset start time is in the past", f"{prefix}.must_start_at_or_after")

        for group_index, group in enumerate(config.split_groups or ()):
            group_field = f"{prefix}.split_groups[{group_index}]"
            total = 0
            for split_index, split in enumerate(group.splits or ()):
                split_field = f"{group_field}.splits[{split_index}]"
                total += split.percent
                out.address(split.beneficiary, f"{split_field}.beneficiary", "split beneficiary")
                burns = is_valid_address(split.beneficiary) and _is_zero_address(split.beneficiary)
                if burns and split.project_id == 0:
                    out.critical(
                        "Split has no beneficiary and no project",
                        f"{split_field}.beneficiary",
                        "The split's share would be sent to 0x0",
                    )
            if total > SPLITS_TOTAL_PERCENT:
                out.critical(
                    f"Split percentages sum to {_percent(total, SPLITS_TOTAL_PERCENT)}",
                    f"{group_field}.splits",
                    "Split percents in a group cannot exceed 100%",
                )

        for limit_index, limits in enumerate(config.fund_access_limit_groups or ()):
            limit_field = f"{prefix}.fund_access_limit_groups[{limit_index}]"
            out.address(limits.terminal, f"{limit_field}.terminal", "terminal")
            out.address(limits.token, f"{limit_field}.token", "token")


def _check_terminals(out: _Collector, terminals: Sequence[TerminalConfig]) -> None:
    if not terminals:
        out.critical("At least one terminal configuration is required", "terminals")
        return
    for index, config in enumerate(terminals):
        out.address(config.terminal, f"terminals[{index}].terminal", "terminal", correctable=True)
        for ctx_index, context in enumerate(config.accounting_contexts):
            out.address(
                context.token,
                f"terminals[{index}].accounting_contexts[{ctx_index}].token",
                "token",
                correctable=True,
            )


def _check_launch(out: _Collector, params: LaunchProjectParams, context: VerificationContext) -> None:
    out.address(params.owner, "owner", "owner", allow_zero=False)
    if not params.project_uri or not params.project_uri.strip():
        out.warning("Project metadata URI is empty", "project_uri")
    _check_rulesets(out, params.rulesets, context)
    _check_terminals(out, params.terminals)


def _check_revnet(out: _Collector, params: DeployRevnetParams) -> None:
    if not params.name or not params.name.strip():
        out.critical("Revnet name is required", "name")
    out.address(params.split_operator, "split_operator", "split operator", allow_zero=False)

    if not params.stages:
        out.critical("At least one stage is required", "stages")
    for index, stage in enumerate(params.stages or ()):
        if stage.split_percent > HIGH_STAGE_PERCENT:
            out.warning(
                f"High operator split: {_percent(stage.split_percent, SPLITS_TOTAL_PERCENT)}",
                f"stages[{index}].split_percent",
            )
        if stage.issuance_decay_percent > HIGH_STAGE_PERCENT:
            out.warning(
                f"High issuance decay: {_percent(stage.issuance_decay_percent, SPLITS_TOTAL_PERCENT)}",
                f"stages[{index}].issuance_decay_percent",
                "Token issuance will decrease rapidly",
            )
    _check_terminals(out, params.terminals)


def _check_suckers(out: _Collector, params: DeploySuckersParams) -> None:
    if not params.deployers:
        out.critical("At least one sucker deployer is required", "deployers")
    for index, config in enumerate(params.deployers or ()):
        out.address(config.deployer, f"deployers[{index}].deployer", "sucker deployer", allow_zero=False)


def _check_tiers(out: _Collector, params: AdjustTiersParams, chain_ids: Iterable[int]) -> None:
    for chain_id in chain_ids:
        hook = params.hooks.get(chain_id)
        out.address(hook, f"hooks[{chain_id}]", f"721 hook on {chain_name(chain_id)}", allow_zero=False)
    if not params.tiers_to_add and not params.ids_to_remove:
        out.warning("No tiers to add or remove", "tiers_to_add")
