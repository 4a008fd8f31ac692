"""
Typed parameter payloads, one per operation kind.

Field names follow the Juicebox v5 structs they are encoded into. Amounts are
integers in the token's smallest unit; percentages use the contracts' own
denominators (splits out of 1e9, reserved percent and tax rates out of 1e4).
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Union

from ..chains import NATIVE_CURRENCY, NATIVE_TOKEN, ZERO_ADDRESS, token_currency


# ---------------------------------------------------------------------------
# Ruleset building blocks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SplitConfig:
    percent: int
    beneficiary: str = ZERO_ADDRESS
    project_id: int = 0
    prefer_add_to_balance: bool = False
    locked_until: int = 0
    hook: str = ZERO_ADDRESS


@dataclass(frozen=True)
class SplitGroup:
    group_id: int
    splits: Sequence[SplitConfig] = ()


@dataclass(frozen=True)
class CurrencyAmount:
    amount: int
    currency: int = NATIVE_CURRENCY


@dataclass(frozen=True)
class FundAccessLimitGroup:
    terminal: str
    token: str = NATIVE_TOKEN
    payout_limits: Sequence[CurrencyAmount] = ()
    surplus_allowances: Sequence[CurrencyAmount] = ()


@dataclass(frozen=True)
class RulesetMetadata:
    reserved_percent: int = 0
    cash_out_tax_rate: int = 0
    base_currency: int = NATIVE_CURRENCY
    pause_pay: bool = False
    pause_credit_transfers: bool = False
    allow_owner_minting: bool = False
    allow_set_custom_token: bool = False
    allow_terminal_migration: bool = False
    allow_set_terminals: bool = False
    allow_set_controller: bool = False
    allow_add_accounting_context: bool = False
    allow_add_price_feed: bool = False
    owner_must_send_payouts: bool = False
    hold_fees: bool = False
    use_total_surplus_for_cash_outs: bool = False
    use_data_hook_for_pay: bool = False
    use_data_hook_for_cash_out: bool = False
    data_hook: str = ZERO_ADDRESS
    metadata: int = 0


@dataclass(frozen=True)
class RulesetConfig:
    weight: int
    duration: int = 0
    weight_cut_percent: int = 0
    must_start_at_or_after: int = 0
    approval_hook: str = ZERO_ADDRESS
    metadata: RulesetMetadata = field(default_factory=RulesetMetadata)
    split_groups: Sequence[SplitGroup] = ()
    fund_access_limit_groups: Sequence[FundAccessLimitGroup] = ()


@dataclass(frozen=True)
class AccountingContext:
    token: str = NATIVE_TOKEN
    decimals: int = 18
    currency: int = token_currency(NATIVE_TOKEN)


@dataclass(frozen=True)
class TerminalConfig:
    terminal: str
    accounting_contexts: Sequence[AccountingContext] = ()


# ---------------------------------------------------------------------------
# Revnet and sucker building blocks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RevnetStage:
    starts_at_or_after: int
    split_percent: int
    initial_issuance: int
    issuance_decay_frequency: int = 0
    issuance_decay_percent: int = 0
    cash_out_tax_rate: int = 0
    extra_metadata: int = 0


@dataclass(frozen=True)
class LoanSource:
    token: str
    terminal: str


@dataclass(frozen=True)
class RevnetLoan:
    amount: int
    source: int
    beneficiary: str


@dataclass(frozen=True)
class BuybackPool:
    token: str
    fee: int
    twap_window: int
    twap_slippage_tolerance: int


@dataclass(frozen=True)
class BuybackHookConfig:
    hook: str = ZERO_ADDRESS
    pools: Sequence[BuybackPool] = ()


@dataclass(frozen=True)
class TokenMapping:
    local_token: str = NATIVE_TOKEN
    remote_token: str = NATIVE_TOKEN
    min_gas: int = 200_000
    min_bridge_amount: int = 10**15


@dataclass(frozen=True)
class SuckerDeployerConfig:
    deployer: str
    mappings: Sequence[TokenMapping] = ()


@dataclass(frozen=True)
class Tier721Config:
    price: int
    initial_supply: int
    encoded_ipfs_uri: bytes = b"\x00" * 32
    voting_units: int = 0
    reserve_frequency: int = 0
    reserve_beneficiary: str = ZERO_ADDRESS
    category: int = 0
    discount_percent: int = 0
    allow_owner_mint: bool = False
    use_reserve_beneficiary_as_default: bool = False
    transfers_pausable: bool = False
    use_voting_units: bool = False
    cannot_be_removed: bool = False
    cannot_increase_discount_percent: bool = False


# ---------------------------------------------------------------------------
# Operation payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProtocolFee:
    """Secondary native payment to a fee project on the same chain."""
    project_id: int
    amount: int
    beneficiary: str
    memo: str = ""


@dataclass(frozen=True)
class PayParams:
    amount: int
    beneficiary: str
    token: str = NATIVE_TOKEN
    min_returned_tokens: int = 0
    metadata: bytes = b""
    fee: Optional[ProtocolFee] = None


@dataclass(frozen=True)
class CashOutParams:
    holder: str
    cash_out_count: int
    beneficiary: str
    token_to_reclaim: str = NATIVE_TOKEN
    min_tokens_reclaimed: int = 0
    metadata: bytes = b""


@dataclass(frozen=True)
class UseAllowanceParams:
    amount: int
    beneficiary: str
    fee_beneficiary: str
    token: str = NATIVE_TOKEN
    currency: int = NATIVE_CURRENCY
    min_tokens_paid_out: int = 0


@dataclass(frozen=True)
class QueueRulesetParams:
    rulesets: Sequence[RulesetConfig]


@dataclass(frozen=True)
class LaunchProjectParams:
    owner: str
    project_uri: str
    rulesets: Sequence[RulesetConfig]
    terminals: Sequence[TerminalConfig]


@dataclass(frozen=True)
class DeployRevnetParams:
    name: str
    ticker: str
    split_operator: str
    stages: Sequence[RevnetStage]
    terminals: Sequence[TerminalConfig]
    uri: str = ""
    salt: bytes = b"\x00" * 32
    base_currency: int = NATIVE_CURRENCY
    loan_sources: Sequence[LoanSource] = ()
    loans: Sequence[RevnetLoan] = ()
    allow_crosschain_sucker_extension: bool = True
    buyback_hook: BuybackHookConfig = field(default_factory=BuybackHookConfig)
    sucker_deployers: Sequence[SuckerDeployerConfig] = ()
    sucker_salt: bytes = b"\x00" * 32


@dataclass(frozen=True)
class DeploySuckersParams:
    deployers: Sequence[SuckerDeployerConfig]
    salt: bytes = b"\x00" * 32


@dataclass(frozen=True)
class AdjustTiersParams:
    """Tier edits against each chain's 721 hook (hook address per chain ID)."""
    hooks: Mapping[int, str]
    tiers_to_add: Sequence[Tier721Config] = ()
    ids_to_remove: Sequence[int] = ()


OperationParams = Union[
    PayParams,
    CashOutParams,
    UseAllowanceParams,
    QueueRulesetParams,
    LaunchProjectParams,
    DeployRevnetParams,
    DeploySuckersParams,
    AdjustTiersParams,
]
