"""
Tests for terminal/controller resolution.
"""

import pytest
from unittest.mock import AsyncMock

from omnibundle.core.chains import JB_CONTRACTS, NATIVE_TOKEN, ZERO_ADDRESS, swap_terminal_for
from omnibundle.core.execution import (
    AdjustTiersParams,
    OperationKind,
    OperationRequest,
    PayParams,
    QueueRulesetParams,
    RemoteServiceError,
    RulesetConfig,
    TerminalNotFound,
    TerminalResolver,
    Tier721Config,
)


TERMINAL = JB_CONTRACTS["JBMultiTerminal"]
BENEFICIARY = "0x1234567890123456789012345678901234567890"


@pytest.fixture
def rpc():
    mock = AsyncMock()
    mock.read_contract = AsyncMock(return_value=(TERMINAL,))
    return mock


def _pay_request(chain_id=8453, project_id=12):
    return OperationRequest(
        kind=OperationKind.PAY,
        chain_ids=[chain_id],
        project_ids={chain_id: project_id},
        params=PayParams(amount=1, beneficiary=BENEFICIARY),
    )


@pytest.mark.asyncio
async def test_primary_terminal_from_directory(rpc):
    resolver = TerminalResolver(rpc)

    terminal = await resolver.resolve_target(_pay_request(), 8453)

    assert terminal == TERMINAL
    args = rpc.read_contract.await_args.args
    assert args[0] == 8453
    assert args[1] == JB_CONTRACTS["JBDirectory"]
    assert args[2] == "primaryTerminalOf(uint256,address)"
    assert args[4] == [12, NATIVE_TOKEN]


@pytest.mark.asyncio
async def test_terminal_cached_per_resolver(rpc):
    resolver = TerminalResolver(rpc)

    await resolver.resolve_terminal(8453, 12, NATIVE_TOKEN)
    await resolver.resolve_terminal(8453, 12, NATIVE_TOKEN.lower())

    assert rpc.read_contract.await_count == 1

    await TerminalResolver(rpc).resolve_terminal(8453, 12, NATIVE_TOKEN)
    assert rpc.read_contract.await_count == 2


@pytest.mark.asyncio
async def test_zero_terminal_falls_back_to_swap_terminal(rpc):
    rpc.read_contract = AsyncMock(return_value=(ZERO_ADDRESS,))

    terminal = await TerminalResolver(rpc).resolve_terminal(10, 3, NATIVE_TOKEN)

    assert terminal == swap_terminal_for(10)


@pytest.mark.asyncio
async def test_zero_terminal_without_swap_terminal_fails(rpc):
    rpc.read_contract = AsyncMock(return_value=(ZERO_ADDRESS,))

    with pytest.raises(TerminalNotFound) as exc_info:
        await TerminalResolver(rpc).resolve_terminal(999, 3, NATIVE_TOKEN)

    assert exc_info.value.chain_id == 999
    assert exc_info.value.project_id == 3


@pytest.mark.asyncio
async def test_rpc_failure_becomes_terminal_not_found(rpc):
    rpc.read_contract = AsyncMock(side_effect=RemoteServiceError("timeout"))

    with pytest.raises(TerminalNotFound):
        await TerminalResolver(rpc).resolve_target(_pay_request(), 8453)


@pytest.mark.asyncio
async def test_queue_ruleset_targets_controller(rpc):
    controller = JB_CONTRACTS["JBController5_1"]
    rpc.read_contract = AsyncMock(return_value=(controller,))
    request = OperationRequest(
        kind=OperationKind.QUEUE_RULESET,
        chain_ids=[1],
        project_ids={1: 7},
        params=QueueRulesetParams(rulesets=[RulesetConfig(weight=1)]),
    )

    assert await TerminalResolver(rpc).resolve_target(request, 1) == controller
    assert rpc.read_contract.await_args.args[2] == "controllerOf(uint256)"


@pytest.mark.asyncio
async def test_project_without_controller(rpc):
    rpc.read_contract = AsyncMock(return_value=(ZERO_ADDRESS,))
    with pytest.raises(TerminalNotFound):
        await TerminalResolver(rpc).resolve_controller(1, 7)


@pytest.mark.asyncio
async def test_adjust_tiers_targets_chain_hook(rpc):
    request = OperationRequest(
        kind=OperationKind.ADJUST_TIERS,
        chain_ids=[1, 10],
        project_ids={1: 2, 10: 2},
        params=AdjustTiersParams(hooks={1: BENEFICIARY}, tiers_to_add=[Tier721Config(price=1, initial_supply=1)]),
    )
    resolver = TerminalResolver(rpc)

    assert await resolver.resolve_target(request, 1) == BENEFICIARY
    with pytest.raises(TerminalNotFound):
        await resolver.resolve_target(request, 10)
    rpc.read_contract.assert_not_awaited()
