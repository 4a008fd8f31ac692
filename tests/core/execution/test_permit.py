"""
Tests for the Permit2 allowance signer.

Covers the metadata layout, the fallback to direct approval, and that exactly
one authorization path is taken per attempt.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from eth_abi import decode
from eth_utils import keccak, to_bytes

from omnibundle.core.chains import JB_CONTRACTS, MAX_UINT256, NATIVE_TOKEN, PERMIT2_ADDRESS
from omnibundle.core.execution import (
    AllowanceApprovalFailed,
    AuthorizationPath,
    PermitSigner,
    UserRejected,
    build_permit2_metadata,
)
from omnibundle.core.execution import abi
from omnibundle.core.execution.permit import JB_SINGLE_ALLOWANCE, permit2_metadata_id


OWNER = "0x1234567890123456789012345678901234567890"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
TERMINAL = JB_CONTRACTS["JBMultiTerminal"]
SIGNATURE = "0x" + "ab" * 65
NOW = 1_700_000_000


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def allowances():
    """Current ERC-20 allowances by spender (lowercase)."""
    return {PERMIT2_ADDRESS.lower(): MAX_UINT256, TERMINAL.lower(): 0}


@pytest.fixture
def rpc(allowances):
    async def read_contract(chain_id, to, signature, arg_types, args, return_types):
        if signature == "allowance(address,address)":
            return (allowances[args[1].lower()],)
        if signature == "allowance(address,address,address)":
            return (0, 0, 5)
        raise AssertionError(f"unexpected read {signature}")

    mock = AsyncMock()
    mock.read_contract = AsyncMock(side_effect=read_contract)
    mock.wait_for_receipt = AsyncMock(return_value=MagicMock(success=True))
    return mock


@pytest.fixture
def backend():
    mock = MagicMock()
    mock.address = OWNER
    mock.can_sign_typed_data = True
    mock.sign_typed_data = AsyncMock(return_value=SIGNATURE)
    mock.send_transaction = AsyncMock(return_value="0xapprove")
    return mock


@pytest.fixture
def signer(backend, rpc) -> PermitSigner:
    return PermitSigner(backend, rpc, expiration_s=100, sig_deadline_s=10, clock=lambda: NOW)


def _approve_args(call):
    raw = to_bytes(hexstr=call.data)
    assert raw[:4] == abi.selector("approve")
    return decode(abi.FUNCTIONS["approve"], raw[4:])


# =============================================================================
# Metadata layout
# =============================================================================

class TestMetadataLayout:
    """JBMetadataResolver layout for a single permit2 entry."""

    def test_metadata_id_xors_purpose_with_spender(self):
        purpose = keccak(text="permit2")[:4]
        spender = to_bytes(hexstr=TERMINAL)[:4]
        assert permit2_metadata_id(TERMINAL) == bytes(a ^ b for a, b in zip(purpose, spender))

    def test_layout(self):
        data = b"\x01" * 40

        metadata = build_permit2_metadata(data, TERMINAL)

        assert metadata[:32] == bytes(32)
        assert metadata[32:36] == permit2_metadata_id(TERMINAL)
        assert metadata[36] == 2
        assert metadata[37:64] == bytes(27)
        assert metadata[64:104] == data
        assert metadata[104:] == bytes(24)
        assert len(metadata) % 32 == 0


# =============================================================================
# Authorization paths
# =============================================================================

@pytest.mark.asyncio
class TestAuthorize:
    """One of Permit2 or direct approval, never both."""

    async def test_native_token_needs_nothing(self, signer, backend, rpc):
        attempt = await signer.authorize(1, NATIVE_TOKEN, TERMINAL, 10)

        assert attempt.path == AuthorizationPath.NONE
        assert attempt.metadata == b""
        rpc.read_contract.assert_not_awaited()
        backend.sign_typed_data.assert_not_awaited()

    async def test_permit2_path(self, signer, backend):
        attempt = await signer.authorize(8453, USDC, TERMINAL, 5_000_000)

        assert attempt.path == AuthorizationPath.PERMIT2
        assert attempt.approval_tx is None
        assert attempt.registry_approval_tx is None
        backend.send_transaction.assert_not_awaited()

        (allowance,) = decode([JB_SINGLE_ALLOWANCE], attempt.metadata[64:])
        sig_deadline, amount, expiration, nonce, signature = allowance
        assert sig_deadline == NOW + 10
        assert amount == 5_000_000
        assert expiration == NOW + 100
        assert nonce == 5
        assert signature == to_bytes(hexstr=SIGNATURE)

    async def test_permit_bound_to_chain_and_spender(self, signer, backend):
        await signer.authorize(8453, USDC, TERMINAL, 7)

        typed_data = backend.sign_typed_data.await_args.args[0]
        assert typed_data["primaryType"] == "PermitSingle"
        assert typed_data["domain"]["chainId"] == 8453
        assert typed_data["domain"]["verifyingContract"].lower() == PERMIT2_ADDRESS.lower()
        assert typed_data["message"]["spender"].lower() == TERMINAL.lower()
        assert typed_data["message"]["details"]["amount"] == 7

    async def test_signing_failure_falls_back_to_exact_approval(self, signer, backend):
        backend.sign_typed_data = AsyncMock(side_effect=RuntimeError("eth_signTypedData_v4 not supported"))

        attempt = await signer.authorize(8453, USDC, TERMINAL, 5_000_000)

        assert attempt.path == AuthorizationPath.DIRECT_APPROVAL
        assert attempt.metadata == b""
        assert attempt.approval_tx == "0xapprove"

        call = backend.send_transaction.await_args.args[0]
        spender, amount = _approve_args(call)
        assert call.to == USDC
        assert spender.lower() == TERMINAL.lower()
        assert amount == 5_000_000

    async def test_short_permit2_allowance_approved_first(self, signer, backend, allowances):
        allowances[PERMIT2_ADDRESS.lower()] = 0

        attempt = await signer.authorize(8453, USDC, TERMINAL, 5_000_000)

        assert attempt.path == AuthorizationPath.PERMIT2
        assert attempt.registry_approval_tx == "0xapprove"
        spender, amount = _approve_args(backend.send_transaction.await_args.args[0])
        assert spender.lower() == PERMIT2_ADDRESS.lower()
        assert amount == MAX_UINT256

    async def test_registry_approval_revert_is_fatal(self, signer, backend, rpc, allowances):
        allowances[PERMIT2_ADDRESS.lower()] = 0
        rpc.wait_for_receipt = AsyncMock(return_value=MagicMock(success=False))

        with pytest.raises(AllowanceApprovalFailed):
            await signer.authorize(8453, USDC, TERMINAL, 5_000_000)

        backend.sign_typed_data.assert_not_awaited()

    async def test_rejected_approval(self, signer, backend):
        backend.can_sign_typed_data = False
        backend.send_transaction = AsyncMock(side_effect=Exception("User rejected the request"))

        with pytest.raises(UserRejected):
            await signer.authorize(8453, USDC, TERMINAL, 1)

    async def test_backend_without_typed_data_approves_directly(self, signer, backend):
        backend.can_sign_typed_data = False

        attempt = await signer.authorize(8453, USDC, TERMINAL, 1)

        assert attempt.path == AuthorizationPath.DIRECT_APPROVAL
        backend.sign_typed_data.assert_not_awaited()

    async def test_existing_spender_allowance_skips_approval(self, signer, backend, allowances):
        backend.can_sign_typed_data = False
        allowances[TERMINAL.lower()] = 10

        attempt = await signer.authorize(8453, USDC, TERMINAL, 10)

        assert attempt.path == AuthorizationPath.DIRECT_APPROVAL
        assert attempt.approval_tx is None
        backend.send_transaction.assert_not_awaited()
