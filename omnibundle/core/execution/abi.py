"""
ABI shapes for the Juicebox v5 entry points.

Each operation kind maps to exactly one canonical function signature. The
``*_tuple`` helpers flatten the typed parameter dataclasses into the nested
tuples eth-abi encodes, in struct field order.
"""

from typing import Any, Dict, List, Sequence, Tuple

from eth_utils import function_signature_to_4byte_selector

from .params import (
    AccountingContext,
    BuybackHookConfig,
    CurrencyAmount,
    FundAccessLimitGroup,
    RevnetStage,
    RulesetConfig,
    RulesetMetadata,
    SplitConfig,
    SplitGroup,
    SuckerDeployerConfig,
    TerminalConfig,
    Tier721Config,
    TokenMapping,
)


# Struct type strings
SPLIT = "(bool,uint32,uint56,address,uint48,address)"
SPLIT_GROUP = f"(uint256,{SPLIT}[])"
CURRENCY_AMOUNT = "(uint224,uint32)"
FUND_ACCESS_LIMIT_GROUP = f"(address,address,{CURRENCY_AMOUNT}[],{CURRENCY_AMOUNT}[])"
RULESET_METADATA = "(uint16,uint16,uint32," + ",".join(["bool"] * 14) + ",address,uint16)"
RULESET_CONFIG = (
    f"(uint48,uint32,uint112,uint32,address,{RULESET_METADATA},"
    f"{SPLIT_GROUP}[],{FUND_ACCESS_LIMIT_GROUP}[])"
)
ACCOUNTING_CONTEXT = "(address,uint8,uint32)"
TERMINAL_CONFIG = f"(address,{ACCOUNTING_CONTEXT}[])"

REV_DESCRIPTION = "(string,string,string,bytes32)"
REV_STAGE = "(uint40,uint32,uint104,uint32,uint32,uint16,uint16)"
REV_LOAN_SOURCE = "(address,address)"
REV_LOAN = "(uint112,uint8,address)"
REV_CONFIG = f"({REV_DESCRIPTION},uint32,address,{REV_STAGE}[],{REV_LOAN_SOURCE}[],{REV_LOAN}[],bool)"
BUYBACK_POOL = "(address,uint24,uint32,uint32)"
BUYBACK_HOOK_CONFIG = f"(address,{BUYBACK_POOL}[])"
TOKEN_MAPPING = "(address,uint32,address,uint256)"
SUCKER_DEPLOYER_CONFIG = f"(address,{TOKEN_MAPPING}[])"
SUCKER_DEPLOYMENT_CONFIG = f"({SUCKER_DEPLOYER_CONFIG}[],bytes32)"

TIER_721_CONFIG = "(uint104,uint32,uint32,uint16,address,bytes32,uint24,uint8,bool,bool,bool,bool,bool,bool)"

FORWARD_REQUEST_DATA = "(address,address,uint256,uint256,uint48,bytes,bytes)"


# name -> argument types, in canonical order
FUNCTIONS: Dict[str, List[str]] = {
    "pay": ["uint256", "address", "uint256", "address", "uint256", "string", "bytes"],
    "cashOutTokensOf": ["address", "uint256", "uint256", "address", "uint256", "address", "bytes"],
    "useAllowanceOf": [
        "uint256", "address", "uint256", "uint256", "uint256", "address", "address", "string",
    ],
    "queueRulesetsOf": ["uint256", f"{RULESET_CONFIG}[]", "string"],
    "launchProjectFor": ["address", "string", f"{RULESET_CONFIG}[]", f"{TERMINAL_CONFIG}[]", "string"],
    "deployFor": [
        "uint256", REV_CONFIG, f"{TERMINAL_CONFIG}[]", BUYBACK_HOOK_CONFIG, SUCKER_DEPLOYMENT_CONFIG,
    ],
    "deploySuckersFor": ["uint256", "bytes32", f"{SUCKER_DEPLOYER_CONFIG}[]"],
    "adjustTiers": [f"{TIER_721_CONFIG}[]", "uint256[]"],
    "approve": ["address", "uint256"],
    "transfer": ["address", "uint256"],
    "execute": [FORWARD_REQUEST_DATA],
}


def function_signature(name: str) -> str:
    return f"{name}({','.join(FUNCTIONS[name])})"


def selector(name: str) -> bytes:
    return function_signature_to_4byte_selector(function_signature(name))


# ---------------------------------------------------------------------------
# Struct flattening
# ---------------------------------------------------------------------------

def split_tuple(split: SplitConfig) -> Tuple[Any, ...]:
    return (
        split.prefer_add_to_balance,
        split.percent,
        split.project_id,
        split.beneficiary,
        split.locked_until,
        split.hook,
    )


def split_group_tuple(group: SplitGroup) -> Tuple[Any, ...]:
    return (group.group_id, [split_tuple(split) for split in group.splits])


def currency_amount_tuple(limit: CurrencyAmount) -> Tuple[int, int]:
    return (limit.amount, limit.currency)


def fund_access_tuple(group: FundAccessLimitGroup) -> Tuple[Any, ...]:
    return (
        group.terminal,
        group.token,
        [currency_amount_tuple(limit) for limit in group.payout_limits],
        [currency_amount_tuple(limit) for limit in group.surplus_allowances],
    )


def metadata_tuple(meta: RulesetMetadata) -> Tuple[Any, ...]:
    return (
        meta.reserved_percent,
        meta.cash_out_tax_rate,
        meta.base_currency,
        meta.pause_pay,
        meta.pause_credit_transfers,
        meta.allow_owner_minting,
        meta.allow_set_custom_token,
        meta.allow_terminal_migration,
        meta.allow_set_terminals,
        meta.allow_set_controller,
        meta.allow_add_accounting_context,
        meta.allow_add_price_feed,
        meta.owner_must_send_payouts,
        meta.hold_fees,
        meta.use_total_surplus_for_cash_outs,
        meta.use_data_hook_for_pay,
        meta.use_data_hook_for_cash_out,
        meta.data_hook,
        meta.metadata,
    )


def ruleset_tuple(config: RulesetConfig) -> Tuple[Any, ...]:
    return (
        config.must_start_at_or_after,
        config.duration,
        config.weight,
        config.weight_cut_percent,
        config.approval_hook,
        metadata_tuple(config.metadata),
        [split_group_tuple(group) for group in config.split_groups],
        [fund_access_tuple(group) for group in config.fund_access_limit_groups],
    )


def accounting_context_tuple(context: AccountingContext) -> Tuple[Any, ...]:
    return (context.token, context.decimals, context.currency)


def terminal_tuple(config: TerminalConfig) -> Tuple[Any, ...]:
    return (config.terminal, [accounting_context_tuple(c) for c in config.accounting_contexts])


def stage_tuple(stage: RevnetStage) -> Tuple[Any, ...]:
    return (
        stage.starts_at_or_after,
        stage.split_percent,
        stage.initial_issuance,
        stage.issuance_decay_frequency,
        stage.issuance_decay_percent,
        stage.cash_out_tax_rate,
        stage.extra_metadata,
    )


def buyback_tuple(config: BuybackHookConfig) -> Tuple[Any, ...]:
    return (
        config.hook,
        [(p.token, p.fee, p.twap_window, p.twap_slippage_tolerance) for p in config.pools],
    )


def token_mapping_tuple(mapping: TokenMapping) -> Tuple[Any, ...]:
    return (mapping.local_token, mapping.min_gas, mapping.remote_token, mapping.min_bridge_amount)


def sucker_deployer_tuple(config: SuckerDeployerConfig) -> Tuple[Any, ...]:
    return (config.deployer, [token_mapping_tuple(m) for m in config.mappings])


def tier_tuple(tier: Tier721Config) -> Tuple[Any, ...]:
    return (
        tier.price,
        tier.initial_supply,
        tier.voting_units,
        tier.reserve_frequency,
        tier.reserve_beneficiary,
        tier.encoded_ipfs_uri,
        tier.category,
        tier.discount_percent,
        tier.allow_owner_mint,
        tier.use_reserve_beneficiary_as_default,
        tier.transfers_pausable,
        tier.use_voting_units,
        tier.cannot_be_removed,
        tier.cannot_increase_discount_percent,
    )


def rulesets_tuple(configs: Sequence[RulesetConfig]) -> List[Tuple[Any, ...]]:
    return [ruleset_tuple(config) for config in configs]
