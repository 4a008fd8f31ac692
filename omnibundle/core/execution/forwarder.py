"""
ERC-2771 forwarding for relayed calls.

In bundled mode the relay, not the user, broadcasts each chain's transaction.
Wrapping the call in a signed ForwardRequest keeps ``_msgSender()`` equal to
the user: the relay calls ``execute`` on the trusted forwarder, which checks
the signature and appends the original sender to the calldata.
"""

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from eth_utils import to_bytes, to_checksum_address

from ..chains import ERC2771_FORWARDER_ADDRESS
from .call_builder import encode_function
from .models import PreparedCall
from .signers import SigningBackend

if TYPE_CHECKING:
    from ...providers.rpc import RpcProvider


logger = logging.getLogger(__name__)


FORWARD_GAS_LIMIT = 2_000_000
FORWARD_DEADLINE_SECONDS = 48 * 60 * 60

FORWARD_REQUEST_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "ForwardRequest": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "gas", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint48"},
        {"name": "data", "type": "bytes"},
    ],
}


@dataclass(frozen=True)
class ForwardRequest:
    chain_id: int
    sender: str
    to: str
    value: int
    gas: int
    nonce: int
    deadline: int
    data: str

    def typed_data(self, forwarder: str = ERC2771_FORWARDER_ADDRESS) -> Dict[str, Any]:
        return {
            "types": FORWARD_REQUEST_TYPES,
            "primaryType": "ForwardRequest",
            "domain": {
                "name": "Juicebox",
                "version": "1",
                "chainId": self.chain_id,
                "verifyingContract": to_checksum_address(forwarder),
            },
            "message": {
                "from": to_checksum_address(self.sender),
                "to": to_checksum_address(self.to),
                "value": self.value,
                "gas": self.gas,
                "nonce": self.nonce,
                "deadline": self.deadline,
                "data": self.data,
            },
        }


class ERC2771Forwarder:
    """Signs ForwardRequests and builds the forwarder's execute() call."""

    def __init__(
        self,
        rpc: "RpcProvider",
        *,
        forwarder: str = ERC2771_FORWARDER_ADDRESS,
        gas_limit: int = FORWARD_GAS_LIMIT,
        deadline_s: int = FORWARD_DEADLINE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.rpc = rpc
        self.forwarder = forwarder
        self.gas_limit = gas_limit
        self.deadline_s = deadline_s
        self._clock = clock

    async def get_nonce(self, chain_id: int, owner: str) -> int:
        (nonce,) = await self.rpc.read_contract(
            chain_id, self.forwarder, "nonces(address)", ["address"], [owner], ["uint256"],
        )
        return nonce

    async def build_request(
        self,
        sender: str,
        call: PreparedCall,
        *,
        nonce: Optional[int] = None,
    ) -> ForwardRequest:
        if nonce is None:
            nonce = await self.get_nonce(call.chain_id, sender)
        return ForwardRequest(
            chain_id=call.chain_id,
            sender=sender,
            to=call.to,
            value=call.value,
            gas=self.gas_limit,
            nonce=nonce,
            deadline=int(self._clock()) + self.deadline_s,
            data=call.data,
        )

    async def wrap(self, backend: SigningBackend, call: PreparedCall) -> PreparedCall:
        """
        Sign ``call`` as a ForwardRequest from the backend's address and
        return the forwarder's execute() call carrying it.
        """
        request = await self.build_request(backend.address, call)
        signature = await backend.sign_typed_data(request.typed_data(self.forwarder))

        data = encode_function("execute", [(
            request.sender,
            request.to,
            request.value,
            request.gas,
            request.deadline,
            to_bytes(hexstr=request.data),
            to_bytes(hexstr=signature),
        )])
        logger.info(
            f"Wrapped {call.description or 'call'} on chain {call.chain_id} in forward request "
            f"(nonce {request.nonce})"
        )
        return PreparedCall(
            chain_id=call.chain_id,
            to=self.forwarder,
            data=data,
            value=call.value,
            description=f"forward:{call.description}",
        )
