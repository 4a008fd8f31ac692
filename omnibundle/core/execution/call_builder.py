"""
Chain call builder.

Turns (operation kind, chain, resolved contract, typed params) into encoded
calldata. Pure: no I/O, and identical inputs always encode to identical bytes.
Business values are not judged here, only structural completeness.
"""

from dataclasses import replace
from typing import Any, List, Optional, Sequence

from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError
from eth_utils import to_hex

from ..chains import NATIVE_TOKEN, is_native_token
from . import abi
from .errors import MalformedParameters
from .models import OperationKind, PreparedCall
from .params import (
    AdjustTiersParams,
    CashOutParams,
    DeployRevnetParams,
    DeploySuckersParams,
    LaunchProjectParams,
    OperationParams,
    PayParams,
    ProtocolFee,
    QueueRulesetParams,
    RulesetConfig,
    UseAllowanceParams,
)


def encode_function(name: str, args: Sequence[Any]) -> str:
    """Selector + ABI-encoded args as a 0x hex string."""
    try:
        encoded = abi_encode(abi.FUNCTIONS[name], list(args))
    except (EncodingError, TypeError, ValueError, OverflowError) as exc:
        raise MalformedParameters(f"Cannot encode {name}: {exc}") from exc
    return to_hex(abi.selector(name) + encoded)


def _require(value: Any, field: str) -> None:
    if value is None:
        raise MalformedParameters(f"{field} is required", field=field)


def _require_list(value: Any, field: str, *, allow_empty: bool = True) -> None:
    if value is None:
        raise MalformedParameters(f"{field} must be a list, got None", field=field)
    if not allow_empty and len(value) == 0:
        raise MalformedParameters(f"{field} must not be empty", field=field)


def _apply_start(rulesets: Sequence[RulesetConfig], start: Optional[int]) -> List[RulesetConfig]:
    if start is None:
        return list(rulesets)
    return [replace(config, must_start_at_or_after=start) for config in rulesets]


def _check_rulesets(rulesets: Sequence[RulesetConfig]) -> None:
    _require_list(rulesets, "rulesets", allow_empty=False)
    for index, config in enumerate(rulesets):
        _require(config, f"rulesets[{index}]")
        _require(config.metadata, f"rulesets[{index}].metadata")
        _require_list(config.split_groups, f"rulesets[{index}].split_groups")
        _require_list(config.fund_access_limit_groups, f"rulesets[{index}].fund_access_limit_groups")
        for group_index, group in enumerate(config.split_groups):
            _require_list(group.splits, f"rulesets[{index}].split_groups[{group_index}].splits")


class CallBuilder:
    """Builds one chain's call for each operation kind."""

    @staticmethod
    def build(
        kind: OperationKind,
        chain_id: int,
        target: str,
        params: OperationParams,
        *,
        project_id: int = 0,
        memo: str = "",
        synchronized_start: Optional[int] = None,
        metadata: Optional[bytes] = None,
    ) -> PreparedCall:
        """
        Build the primary call for one chain.

        Args:
            kind: Operation kind
            chain_id: Target chain
            target: Resolved contract (terminal, controller, deployer, registry or hook)
            params: Typed payload matching ``kind``
            project_id: Project on this chain (0 for project-creating operations)
            memo: Memo forwarded to functions that accept one
            synchronized_start: Shared mustStartAtOrAfter applied to every ruleset
            metadata: Overrides the payload's metadata bytes (e.g. a permit blob)

        Returns:
            PreparedCall with encoded data and native value
        """
        _require(target, "target")
        _require(params, "params")

        if kind == OperationKind.PAY:
            return CallBuilder.build_pay(chain_id, target, project_id, params, memo=memo, metadata=metadata)
        if kind == OperationKind.CASH_OUT:
            return CallBuilder.build_cash_out(chain_id, target, project_id, params, metadata=metadata)
        if kind == OperationKind.USE_ALLOWANCE:
            return CallBuilder.build_use_allowance(chain_id, target, project_id, params, memo=memo)
        if kind == OperationKind.QUEUE_RULESET:
            return CallBuilder.build_queue_rulesets(
                chain_id, target, project_id, params, memo=memo, synchronized_start=synchronized_start,
            )
        if kind == OperationKind.LAUNCH_PROJECT:
            return CallBuilder.build_launch_project(
                chain_id, target, params, memo=memo, synchronized_start=synchronized_start,
            )
        if kind == OperationKind.DEPLOY_REVNET:
            return CallBuilder.build_deploy_revnet(chain_id, target, project_id, params)
        if kind == OperationKind.DEPLOY_SUCKERS:
            return CallBuilder.build_deploy_suckers(chain_id, target, project_id, params)
        if kind == OperationKind.ADJUST_TIERS:
            return CallBuilder.build_adjust_tiers(chain_id, target, params)
        raise MalformedParameters(f"Unsupported operation kind: {kind}")

    @staticmethod
    def build_pay(
        chain_id: int,
        terminal: str,
        project_id: int,
        params: PayParams,
        *,
        memo: str = "",
        metadata: Optional[bytes] = None,
    ) -> PreparedCall:
        if not isinstance(params, PayParams):
            raise MalformedParameters("pay expects PayParams", field="params")
        _require(params.amount, "amount")
        _require(params.beneficiary, "beneficiary")
        _require(params.token, "token")

        data = encode_function("pay", [
            project_id,
            params.token,
            params.amount,
            params.beneficiary,
            params.min_returned_tokens,
            memo,
            metadata if metadata is not None else params.metadata,
        ])
        value = params.amount if is_native_token(params.token) else 0
        return PreparedCall(chain_id=chain_id, to=terminal, data=data, value=value, description="pay")

    @staticmethod
    def build_fee_payment(chain_id: int, terminal: str, fee: ProtocolFee) -> PreparedCall:
        """Native pay() into the fee project; the secondary call of a paid operation."""
        data = encode_function("pay", [
            fee.project_id,
            NATIVE_TOKEN,
            fee.amount,
            fee.beneficiary,
            0,
            fee.memo,
            b"",
        ])
        return PreparedCall(chain_id=chain_id, to=terminal, data=data, value=fee.amount, description="fee")

    @staticmethod
    def build_cash_out(
        chain_id: int,
        terminal: str,
        project_id: int,
        params: CashOutParams,
        *,
        metadata: Optional[bytes] = None,
    ) -> PreparedCall:
        if not isinstance(params, CashOutParams):
            raise MalformedParameters("cashOut expects CashOutParams", field="params")
        _require(params.holder, "holder")
        _require(params.cash_out_count, "cash_out_count")
        _require(params.beneficiary, "beneficiary")

        data = encode_function("cashOutTokensOf", [
            params.holder,
            project_id,
            params.cash_out_count,
            params.token_to_reclaim,
            params.min_tokens_reclaimed,
            params.beneficiary,
            metadata if metadata is not None else params.metadata,
        ])
        return PreparedCall(chain_id=chain_id, to=terminal, data=data, description="cashOut")

    @staticmethod
    def build_use_allowance(
        chain_id: int,
        terminal: str,
        project_id: int,
        params: UseAllowanceParams,
        *,
        memo: str = "",
    ) -> PreparedCall:
        if not isinstance(params, UseAllowanceParams):
            raise MalformedParameters("useAllowance expects UseAllowanceParams", field="params")
        _require(params.amount, "amount")
        _require(params.beneficiary, "beneficiary")
        _require(params.fee_beneficiary, "fee_beneficiary")

        data = encode_function("useAllowanceOf", [
            project_id,
            params.token,
            params.amount,
            params.currency,
            params.min_tokens_paid_out,
            params.beneficiary,
            params.fee_beneficiary,
            memo,
        ])
        return PreparedCall(chain_id=chain_id, to=terminal, data=data, description="useAllowance")

    @staticmethod
    def build_queue_rulesets(
        chain_id: int,
        controller: str,
        project_id: int,
        params: QueueRulesetParams,
        *,
        memo: str = "",
        synchronized_start: Optional[int] = None,
    ) -> PreparedCall:
        if not isinstance(params, QueueRulesetParams):
            raise MalformedParameters("queueRuleset expects QueueRulesetParams", field="params")
        _check_rulesets(params.rulesets)

        rulesets = _apply_start(params.rulesets, synchronized_start)
        data = encode_function("queueRulesetsOf", [project_id, abi.rulesets_tuple(rulesets), memo])
        return PreparedCall(chain_id=chain_id, to=controller, data=data, description="queueRulesets")

    @staticmethod
    def build_launch_project(
        chain_id: int,
        controller: str,
        params: LaunchProjectParams,
        *,
        memo: str = "",
        synchronized_start: Optional[int] = None,
    ) -> PreparedCall:
        if not isinstance(params, LaunchProjectParams):
            raise MalformedParameters("launchProject expects LaunchProjectParams", field="params")
        _require(params.owner, "owner")
        _require(params.project_uri, "project_uri")
        _check_rulesets(params.rulesets)
        _require_list(params.terminals, "terminals", allow_empty=False)
        for index, terminal in enumerate(params.terminals):
            _require_list(terminal.accounting_contexts, f"terminals[{index}].accounting_contexts")

        rulesets = _apply_start(params.rulesets, synchronized_start)
        data = encode_function("launchProjectFor", [
            params.owner,
            params.project_uri,
            abi.rulesets_tuple(rulesets),
            [abi.terminal_tuple(t) for t in params.terminals],
            memo,
        ])
        return PreparedCall(chain_id=chain_id, to=controller, data=data, description="launchProject")

    @staticmethod
    def build_deploy_revnet(
        chain_id: int,
        deployer: str,
        revnet_id: int,
        params: DeployRevnetParams,
    ) -> PreparedCall:
        if not isinstance(params, DeployRevnetParams):
            raise MalformedParameters("deployRevnet expects DeployRevnetParams", field="params")
        _require(params.name, "name")
        _require(params.ticker, "ticker")
        _require(params.split_operator, "split_operator")
        _require_list(params.stages, "stages", allow_empty=False)
        _require_list(params.terminals, "terminals", allow_empty=False)
        _require_list(params.loan_sources, "loan_sources")
        _require_list(params.loans, "loans")
        _require_list(params.sucker_deployers, "sucker_deployers")

        configuration = (
            (params.name, params.ticker, params.uri, params.salt),
            params.base_currency,
            params.split_operator,
            [abi.stage_tuple(stage) for stage in params.stages],
            [(source.token, source.terminal) for source in params.loan_sources],
            [(loan.amount, loan.source, loan.beneficiary) for loan in params.loans],
            params.allow_crosschain_sucker_extension,
        )
        sucker_config = (
            [abi.sucker_deployer_tuple(config) for config in params.sucker_deployers],
            params.sucker_salt,
        )
        data = encode_function("deployFor", [
            revnet_id,
            configuration,
            [abi.terminal_tuple(t) for t in params.terminals],
            abi.buyback_tuple(params.buyback_hook),
            sucker_config,
        ])
        return PreparedCall(chain_id=chain_id, to=deployer, data=data, description="deployRevnet")

    @staticmethod
    def build_deploy_suckers(
        chain_id: int,
        registry: str,
        project_id: int,
        params: DeploySuckersParams,
    ) -> PreparedCall:
        if not isinstance(params, DeploySuckersParams):
            raise MalformedParameters("deploySuckers expects DeploySuckersParams", field="params")
        _require_list(params.deployers, "deployers", allow_empty=False)
        _require(params.salt, "salt")

        data = encode_function("deploySuckersFor", [
            project_id,
            params.salt,
            [abi.sucker_deployer_tuple(config) for config in params.deployers],
        ])
        return PreparedCall(chain_id=chain_id, to=registry, data=data, description="deploySuckers")

    @staticmethod
    def build_adjust_tiers(chain_id: int, hook: str, params: AdjustTiersParams) -> PreparedCall:
        if not isinstance(params, AdjustTiersParams):
            raise MalformedParameters("adjustTiers expects AdjustTiersParams", field="params")
        _require_list(params.tiers_to_add, "tiers_to_add")
        _require_list(params.ids_to_remove, "ids_to_remove")
        if not params.tiers_to_add and not params.ids_to_remove:
            raise MalformedParameters("adjustTiers needs tiers to add or ids to remove", field="tiers_to_add")

        data = encode_function("adjustTiers", [
            [abi.tier_tuple(tier) for tier in params.tiers_to_add],
            list(params.ids_to_remove),
        ])
        return PreparedCall(chain_id=chain_id, to=hook, data=data, description="adjustTiers")

    @staticmethod
    def build_approve(chain_id: int, token: str, spender: str, amount: int) -> PreparedCall:
        """ERC-20 approve(spender, amount)."""
        data = encode_function("approve", [spender, amount])
        return PreparedCall(chain_id=chain_id, to=token, data=data, description="approve")

    @staticmethod
    def build_transfer(chain_id: int, token: str, recipient: str, amount: int) -> PreparedCall:
        """ERC-20 transfer(recipient, amount)."""
        data = encode_function("transfer", [recipient, amount])
        return PreparedCall(chain_id=chain_id, to=token, data=data, description="transfer")
