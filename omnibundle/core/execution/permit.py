"""
Permit2 allowance signer.

Establishes spending authorization for an ERC-20 payment. The preferred path
is a gasless PermitSingle signature embedded in the pay() metadata; the
fallback is a direct approve() on the destination spender. Exactly one of the
two runs per attempt.
"""

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from eth_abi import encode as abi_encode
from eth_utils import keccak, to_bytes, to_checksum_address

from ..chains import MAX_UINT256, PERMIT2_ADDRESS, is_native_token
from ...config import settings
from .call_builder import CallBuilder
from .errors import (
    AllowanceApprovalFailed,
    AllowanceSigningFailed,
    UserRejected,
    is_user_rejection,
)
from .models import AuthorizationPath
from .signers import SigningBackend

if TYPE_CHECKING:
    from ...providers.rpc import RpcProvider


logger = logging.getLogger(__name__)


JB_SINGLE_ALLOWANCE = "(uint256,uint160,uint48,uint48,bytes)"

# Offset (in 32-byte words) of the first data section in JB metadata:
# word 0 is reserved, word 1 holds the lookup table
PERMIT2_DATA_OFFSET = 2

PERMIT2_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "PermitDetails": [
        {"name": "token", "type": "address"},
        {"name": "amount", "type": "uint160"},
        {"name": "expiration", "type": "uint48"},
        {"name": "nonce", "type": "uint48"},
    ],
    "PermitSingle": [
        {"name": "details", "type": "PermitDetails"},
        {"name": "spender", "type": "address"},
        {"name": "sigDeadline", "type": "uint256"},
    ],
}


def permit2_metadata_id(spender: str) -> bytes:
    """bytes4(bytes20(keccak256("permit2")) ^ bytes20(spender))."""
    purpose = keccak(text="permit2")[:20]
    target = to_bytes(hexstr=spender)
    return bytes(a ^ b for a, b in zip(purpose[:4], target[:4]))


def encode_single_allowance(
    sig_deadline: int,
    amount: int,
    expiration: int,
    nonce: int,
    signature: bytes,
) -> bytes:
    """abi.encode(JBSingleAllowance) as a single tuple."""
    return abi_encode([JB_SINGLE_ALLOWANCE], [(sig_deadline, amount, expiration, nonce, signature)])


def build_permit2_metadata(allowance_data: bytes, spender: str) -> bytes:
    """
    JBMetadataResolver layout for one entry:
    32 reserved zero bytes, then the lookup word (4-byte id, 1-byte offset,
    zero padding), then the data padded to a 32-byte boundary. No length
    prefix; the resolver slices between offsets.
    """
    padded_len = -(-len(allowance_data) // 32) * 32
    lookup = permit2_metadata_id(spender) + bytes([PERMIT2_DATA_OFFSET]) + bytes(27)
    return bytes(32) + lookup + allowance_data.ljust(padded_len, b"\x00")


@dataclass(frozen=True)
class AllowanceSignature:
    """A signed PermitSingle; turned into pay() metadata once and dropped."""
    chain_id: int
    token: str
    spender: str
    amount: int
    expiration: int
    nonce: int
    sig_deadline: int
    signature: bytes

    def to_metadata(self) -> bytes:
        data = encode_single_allowance(
            self.sig_deadline, self.amount, self.expiration, self.nonce, self.signature,
        )
        return build_permit2_metadata(data, self.spender)


@dataclass(frozen=True)
class AllowanceAttempt:
    """Result of one authorization attempt."""
    path: AuthorizationPath
    metadata: bytes = b""
    registry_approval_tx: Optional[str] = None  # approve(PERMIT2, max) sent first
    approval_tx: Optional[str] = None           # approve(spender, amount) fallback


def permit_single_typed_data(
    chain_id: int,
    token: str,
    spender: str,
    amount: int,
    expiration: int,
    nonce: int,
    sig_deadline: int,
) -> Dict[str, Any]:
    return {
        "types": PERMIT2_TYPES,
        "primaryType": "PermitSingle",
        "domain": {
            "name": "Permit2",
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(PERMIT2_ADDRESS),
        },
        "message": {
            "details": {
                "token": to_checksum_address(token),
                "amount": amount,
                "expiration": expiration,
                "nonce": nonce,
            },
            "spender": to_checksum_address(spender),
            "sigDeadline": sig_deadline,
        },
    }


class PermitSigner:
    """
    Authorizes one ERC-20 spend on one chain.

    Flow:
    1. Read the token's allowance to Permit2; if short, approve Permit2 for
       the max amount and wait for it (failure is fatal for the chain).
    2. Sign a PermitSingle bound to the spender and chain.
    3. If signing throws, approve the spender directly for the exact amount
       and pay without metadata.
    """

    def __init__(
        self,
        backend: SigningBackend,
        rpc: "RpcProvider",
        *,
        expiration_s: Optional[int] = None,
        sig_deadline_s: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.rpc = rpc
        self.expiration_s = expiration_s if expiration_s is not None else settings.permit_expiration_seconds
        self.sig_deadline_s = (
            sig_deadline_s if sig_deadline_s is not None else settings.permit_sig_deadline_seconds
        )
        self._clock = clock

    async def erc20_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        (allowance,) = await self.rpc.read_contract(
            chain_id, token, "allowance(address,address)", ["address", "address"], [owner, spender], ["uint256"],
        )
        return allowance

    async def permit2_nonce(self, chain_id: int, owner: str, token: str, spender: str) -> int:
        # Permit2.allowance returns (amount, expiration, nonce)
        result = await self.rpc.read_contract(
            chain_id,
            PERMIT2_ADDRESS,
            "allowance(address,address,address)",
            ["address", "address", "address"],
            [owner, token, spender],
            ["uint160", "uint48", "uint48"],
        )
        return int(result[2])

    async def authorize(self, chain_id: int, token: str, spender: str, amount: int) -> AllowanceAttempt:
        """
        Authorize ``spender`` to move ``amount`` of ``token``.

        Returns:
            AllowanceAttempt with the permit metadata (PERMIT2 path) or the
            approval tx hash (DIRECT_APPROVAL path)

        Raises:
            AllowanceApprovalFailed: An approval transaction failed or reverted
            UserRejected: The user dismissed an approval prompt
        """
        if is_native_token(token):
            return AllowanceAttempt(path=AuthorizationPath.NONE)

        registry_tx = None
        signature: Optional[AllowanceSignature] = None

        if self.backend.can_sign_typed_data:
            registry_tx = await self.ensure_registry_allowance(chain_id, token, amount)
            try:
                signature = await self.sign_permit(chain_id, token, spender, amount)
            except AllowanceSigningFailed as exc:
                logger.warning(f"Permit2 signature failed on chain {chain_id}, using direct approval: {exc}")
        else:
            logger.info(f"Signer on chain {chain_id} cannot sign typed data, using direct approval")

        if signature is not None:
            logger.info(f"Authorized {amount} of {token} for {spender} on chain {chain_id} via Permit2")
            return AllowanceAttempt(
                path=AuthorizationPath.PERMIT2,
                metadata=signature.to_metadata(),
                registry_approval_tx=registry_tx,
            )

        approval_tx = await self.approve_directly(chain_id, token, spender, amount)
        logger.info(f"Authorized {amount} of {token} for {spender} on chain {chain_id} via direct approval")
        return AllowanceAttempt(
            path=AuthorizationPath.DIRECT_APPROVAL,
            registry_approval_tx=registry_tx,
            approval_tx=approval_tx,
        )

    async def ensure_registry_allowance(self, chain_id: int, token: str, amount: int) -> Optional[str]:
        """Approve Permit2 for the max amount when the current allowance is short."""
        current = await self.erc20_allowance(chain_id, token, self.backend.address, PERMIT2_ADDRESS)
        if current >= amount:
            return None
        logger.info(f"Token {token} allowance to Permit2 on chain {chain_id} is {current}, approving")
        return await self._send_approval(chain_id, token, PERMIT2_ADDRESS, MAX_UINT256)

    async def sign_permit(self, chain_id: int, token: str, spender: str, amount: int) -> AllowanceSignature:
        now = int(self._clock())
        expiration = now + self.expiration_s
        sig_deadline = now + self.sig_deadline_s
        try:
            nonce = await self.permit2_nonce(chain_id, self.backend.address, token, spender)
            typed_data = permit_single_typed_data(
                chain_id, token, spender, amount, expiration, nonce, sig_deadline,
            )
            signature = await self.backend.sign_typed_data(typed_data)
        except Exception as exc:
            raise AllowanceSigningFailed(str(exc)) from exc

        return AllowanceSignature(
            chain_id=chain_id,
            token=token,
            spender=spender,
            amount=amount,
            expiration=expiration,
            nonce=nonce,
            sig_deadline=sig_deadline,
            signature=to_bytes(hexstr=signature),
        )

    async def approve_directly(self, chain_id: int, token: str, spender: str, amount: int) -> Optional[str]:
        """approve(spender, amount) unless the spender already has enough."""
        current = await self.erc20_allowance(chain_id, token, self.backend.address, spender)
        if current >= amount:
            return None
        return await self._send_approval(chain_id, token, spender, amount)

    async def _send_approval(self, chain_id: int, token: str, spender: str, amount: int) -> str:
        call = CallBuilder.build_approve(chain_id, token, spender, amount)
        try:
            tx_hash = await self.backend.send_transaction(call)
            receipt = await self.rpc.wait_for_receipt(chain_id, tx_hash)
        except Exception as exc:
            if is_user_rejection(exc):
                raise UserRejected(str(exc)) from exc
            raise AllowanceApprovalFailed(f"Approval of {spender} on chain {chain_id} failed: {exc}") from exc

        if not receipt.success:
            raise AllowanceApprovalFailed(f"Approval {tx_hash} on chain {chain_id} reverted")
        return tx_hash
