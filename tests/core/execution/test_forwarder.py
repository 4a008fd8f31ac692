"""
Tests for ERC-2771 forward request wrapping.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from eth_abi import decode
from eth_utils import to_bytes

from omnibundle.core.chains import ERC2771_FORWARDER_ADDRESS, JB_CONTRACTS
from omnibundle.core.execution import ERC2771Forwarder, PreparedCall
from omnibundle.core.execution import abi
from omnibundle.core.execution.forwarder import FORWARD_DEADLINE_SECONDS, FORWARD_GAS_LIMIT


USER = "0x1234567890123456789012345678901234567890"
CONTROLLER = JB_CONTRACTS["JBController5_1"]
SIGNATURE = "0x" + "cd" * 65
NOW = 1_700_000_000


@pytest.fixture
def rpc():
    mock = AsyncMock()
    mock.read_contract = AsyncMock(return_value=(3,))
    return mock


@pytest.fixture
def backend():
    mock = MagicMock()
    mock.address = USER
    mock.sign_typed_data = AsyncMock(return_value=SIGNATURE)
    return mock


@pytest.fixture
def call() -> PreparedCall:
    return PreparedCall(chain_id=10, to=CONTROLLER, data="0xdeadbeef", value=0, description="launchProject")


@pytest.mark.asyncio
async def test_request_uses_forwarder_nonce_and_deadline(rpc, call):
    forwarder = ERC2771Forwarder(rpc, clock=lambda: NOW)

    request = await forwarder.build_request(USER, call)

    assert request.nonce == 3
    assert request.deadline == NOW + FORWARD_DEADLINE_SECONDS
    assert request.gas == FORWARD_GAS_LIMIT
    args = rpc.read_contract.await_args.args
    assert args[0] == 10
    assert args[1] == ERC2771_FORWARDER_ADDRESS
    assert args[2] == "nonces(address)"


@pytest.mark.asyncio
async def test_typed_data_domain(rpc, call):
    request = await ERC2771Forwarder(rpc, clock=lambda: NOW).build_request(USER, call, nonce=0)

    typed_data = request.typed_data()

    assert typed_data["primaryType"] == "ForwardRequest"
    assert typed_data["domain"]["name"] == "Juicebox"
    assert typed_data["domain"]["version"] == "1"
    assert typed_data["domain"]["chainId"] == 10
    assert typed_data["message"]["from"].lower() == USER.lower()
    assert typed_data["message"]["to"].lower() == CONTROLLER.lower()
    rpc.read_contract.assert_not_awaited()


@pytest.mark.asyncio
async def test_wrap_targets_forwarder_execute(rpc, backend, call):
    wrapped = await ERC2771Forwarder(rpc, clock=lambda: NOW).wrap(backend, call)

    assert wrapped.to == ERC2771_FORWARDER_ADDRESS
    assert wrapped.chain_id == 10
    assert wrapped.description == "forward:launchProject"

    raw = to_bytes(hexstr=wrapped.data)
    assert raw[:4] == abi.selector("execute")
    ((sender, to, value, gas, deadline, data, signature),) = decode(abi.FUNCTIONS["execute"], raw[4:])
    assert sender.lower() == USER.lower()
    assert to.lower() == CONTROLLER.lower()
    assert value == 0
    assert gas == FORWARD_GAS_LIMIT
    assert deadline == NOW + FORWARD_DEADLINE_SECONDS
    assert data == bytes.fromhex("deadbeef")
    assert signature == to_bytes(hexstr=SIGNATURE)

    typed_data = backend.sign_typed_data.await_args.args[0]
    assert typed_data["message"]["nonce"] == 3
