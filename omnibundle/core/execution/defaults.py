"""Default configurations shared by multi-chain project operations."""

import time
from typing import List, Mapping, Optional

from eth_utils import keccak

from ..chains import (
    JB_CONTRACTS,
    NATIVE_TOKEN,
    sucker_deployer_for,
    swap_terminal_for,
    token_currency,
    usdc_for,
)
from ...config import settings
from .errors import MalformedParameters
from .params import AccountingContext, SuckerDeployerConfig, TerminalConfig, TokenMapping


def synchronized_start_time(now: Optional[int] = None, delay_s: Optional[int] = None) -> int:
    """One mustStartAtOrAfter for every chain so rulesets activate together."""
    now = int(time.time()) if now is None else now
    delay = settings.synchronized_start_delay_seconds if delay_s is None else delay_s
    return now + delay


def sucker_salt(project_ids: Mapping[int, int]) -> bytes:
    """
    Deterministic salt linking one project's suckers across chains.

    Same project mapping -> same salt on every chain, so CREATE2 yields the
    same sucker addresses. No timestamp or randomness may enter it.
    """
    if not project_ids:
        raise MalformedParameters("Sucker salt needs at least one chain:project pair", field="project_ids")
    entries = "-".join(f"{chain_id}:{project_ids[chain_id]}" for chain_id in sorted(project_ids))
    return keccak(text=f"sucker-v1-{entries}")


def default_token_mappings() -> List[TokenMapping]:
    """Native token bridges to native token; 0.001 ETH minimum, 200k min gas."""
    return [TokenMapping(local_token=NATIVE_TOKEN, remote_token=NATIVE_TOKEN)]


def default_sucker_deployers(chain_id: int) -> List[SuckerDeployerConfig]:
    deployer = sucker_deployer_for(chain_id)
    if deployer is None:
        raise MalformedParameters(f"No sucker deployer known for chain {chain_id}", field="deployers")
    return [SuckerDeployerConfig(deployer=deployer, mappings=default_token_mappings())]


def default_terminal_configs(chain_id: int, *, accept_usdc: bool = False) -> List[TerminalConfig]:
    """JBMultiTerminal accepting native (and optionally USDC), plus the chain's swap terminal."""
    contexts = [AccountingContext(token=NATIVE_TOKEN, decimals=18, currency=token_currency(NATIVE_TOKEN))]
    if accept_usdc:
        usdc = usdc_for(chain_id)
        if usdc is None:
            raise MalformedParameters(f"No USDC address known for chain {chain_id}", field="terminals")
        contexts.append(AccountingContext(token=usdc, decimals=6, currency=token_currency(usdc)))

    configs = [TerminalConfig(terminal=JB_CONTRACTS["JBMultiTerminal5_1"], accounting_contexts=contexts)]
    swap_terminal = swap_terminal_for(chain_id)
    if swap_terminal:
        configs.append(TerminalConfig(terminal=swap_terminal, accounting_contexts=[]))
    return configs
