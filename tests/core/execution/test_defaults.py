"""
Tests for shared multi-chain defaults and chain metadata helpers.
"""

import pytest

from omnibundle.core.chains import (
    JB_CONTRACTS,
    NATIVE_TOKEN,
    chain_name,
    explorer_tx_url,
    is_native_token,
    swap_terminal_for,
    token_currency,
    usdc_for,
)
from omnibundle.core.execution import (
    MalformedParameters,
    default_sucker_deployers,
    default_terminal_configs,
    sucker_salt,
    synchronized_start_time,
)


def test_synchronized_start_is_offset_from_now():
    assert synchronized_start_time(1_700_000_000, 300) == 1_700_000_300
    assert synchronized_start_time(1_700_000_000, 0) == 1_700_000_000


class TestSuckerSalt:
    """Same project mapping must give the same salt on every chain."""

    def test_independent_of_mapping_order(self):
        assert sucker_salt({1: 5, 10: 7}) == sucker_salt({10: 7, 1: 5})

    def test_changes_with_project_ids(self):
        assert sucker_salt({1: 5, 10: 7}) != sucker_salt({1: 5, 10: 8})

    def test_is_32_bytes(self):
        assert len(sucker_salt({8453: 1})) == 32

    def test_empty_mapping_rejected(self):
        with pytest.raises(MalformedParameters):
            sucker_salt({})


class TestTerminalDefaults:
    def test_native_only(self):
        configs = default_terminal_configs(8453)

        assert configs[0].terminal == JB_CONTRACTS["JBMultiTerminal5_1"]
        assert [ctx.token for ctx in configs[0].accounting_contexts] == [NATIVE_TOKEN]
        assert configs[1].terminal == swap_terminal_for(8453)
        assert configs[1].accounting_contexts == []

    def test_usdc_context_uses_six_decimals(self):
        usdc_context = default_terminal_configs(10, accept_usdc=True)[0].accounting_contexts[1]

        assert usdc_context.token == usdc_for(10)
        assert usdc_context.decimals == 6
        assert usdc_context.currency == token_currency(usdc_for(10))

    def test_unknown_chain_cannot_accept_usdc(self):
        with pytest.raises(MalformedParameters):
            default_terminal_configs(999, accept_usdc=True)


def test_sucker_deployers_unknown_chain():
    assert default_sucker_deployers(42161)[0].mappings[0].local_token == NATIVE_TOKEN
    with pytest.raises(MalformedParameters):
        default_sucker_deployers(999)


def test_chain_helpers():
    assert chain_name(8453) == "Base"
    assert chain_name(999) == "Chain 999"
    assert is_native_token(NATIVE_TOKEN.lower())
    assert not is_native_token(None)
    assert token_currency(NATIVE_TOKEN) == 0x0000EEEE
    assert explorer_tx_url(10, "0xabc") == "https://optimistic.etherscan.io/tx/0xabc"
    assert explorer_tx_url(999, "0xabc") is None
