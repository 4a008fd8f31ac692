"""
Signing backends.

Two kinds of backend drive a chain's transactions:
- WalletSigner: a directly connected wallet. It has an active chain that must
  be switched before signing, signs EIP-712 data, and may support batched
  calls (EIP-5792 style).
- ManagedSigner: a custodial backend that executes calls server-side. It has
  no chain-switch step and cannot produce user signatures.

Executors ask capability questions (``supports_batching``,
``can_sign_typed_data``) up front instead of catching late failures.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .models import PreparedCall

if TYPE_CHECKING:
    from ...providers.managed_wallet import ManagedWalletProvider
    from ...providers.rpc import RpcProvider


logger = logging.getLogger(__name__)


class SigningBackend(ABC):
    """Common surface the executor drives."""

    address: str
    requires_chain_switch: bool = False
    can_sign_typed_data: bool = False

    @abstractmethod
    async def send_transaction(self, call: PreparedCall) -> str:
        """Submit one call; returns the transaction hash."""
        pass

    async def supports_batching(self, chain_id: int) -> bool:
        return False

    async def send_calls(self, chain_id: int, calls: Sequence[PreparedCall]) -> str:
        """Submit several calls under one confirmation; returns the batch tx hash."""
        raise NotImplementedError(f"{type(self).__name__} cannot batch calls")

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        raise NotImplementedError(f"{type(self).__name__} cannot sign typed data")

    async def ensure_chain(self, chain_id: int) -> None:
        """Make ``chain_id`` the active chain if the backend has one."""
        return None


class WalletSigner(SigningBackend):
    """A wallet the user controls directly."""

    requires_chain_switch = True
    can_sign_typed_data = True

    @abstractmethod
    async def get_chain_id(self) -> int:
        pass

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        pass

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    async def sign_transaction(self, call: PreparedCall) -> str:
        """Sign without broadcasting; returns the raw signed transaction."""
        pass

    async def ensure_chain(self, chain_id: int) -> None:
        current = await self.get_chain_id()
        if current != chain_id:
            logger.info(f"Switching wallet from chain {current} to {chain_id}")
            await self.switch_chain(chain_id)


class LocalAccountWallet(WalletSigner):
    """
    Wallet backed by an in-process private key (eth-account).

    Used for scripted operation and tests. Transactions are filled from RPC
    (nonce, gas, EIP-1559 fees), signed locally and broadcast raw.
    """

    def __init__(
        self,
        account: LocalAccount,
        rpc: "RpcProvider",
        *,
        chain_id: int = 1,
        gas_multiplier: float = 1.2,
    ):
        self.account = account
        self.address = account.address
        self.rpc = rpc
        self.gas_multiplier = gas_multiplier
        self._chain_id = chain_id

    @classmethod
    def from_key(cls, private_key: str, rpc: "RpcProvider", **kwargs: Any) -> "LocalAccountWallet":
        return cls(Account.from_key(private_key), rpc, **kwargs)

    async def get_chain_id(self) -> int:
        return self._chain_id

    async def switch_chain(self, chain_id: int) -> None:
        self._chain_id = chain_id

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        signed = self.account.sign_typed_data(full_message=typed_data)
        return "0x" + bytes(signed.signature).hex()

    async def _fill(self, call: PreparedCall) -> Dict[str, Any]:
        tx = {"from": self.address, "to": call.to, "data": call.data, "value": hex(call.value)}
        gas = await self.rpc.estimate_gas(call.chain_id, tx)
        fees = await self.rpc.get_fee_params(call.chain_id)
        return {
            "chainId": call.chain_id,
            "to": call.to,
            "data": call.data,
            "value": call.value,
            "nonce": await self.rpc.get_transaction_count(call.chain_id, self.address),
            "gas": int(gas * self.gas_multiplier),
            "maxFeePerGas": fees["maxFeePerGas"],
            "maxPriorityFeePerGas": fees["maxPriorityFeePerGas"],
        }

    async def sign_transaction(self, call: PreparedCall) -> str:
        if call.chain_id != self._chain_id:
            raise ValueError(f"Wallet is on chain {self._chain_id}, not {call.chain_id}")
        signed = self.account.sign_transaction(await self._fill(call))
        return "0x" + bytes(signed.raw_transaction).hex()

    async def send_transaction(self, call: PreparedCall) -> str:
        raw = await self.sign_transaction(call)
        return await self.rpc.send_raw_transaction(call.chain_id, raw)


class ManagedSigner(SigningBackend):
    """Custodial backend: the server signs and submits for the user."""

    def __init__(self, provider: "ManagedWalletProvider", address: str):
        self.provider = provider
        self.address = address

    @classmethod
    async def connect(cls, provider: "ManagedWalletProvider", chain_id: int = 1) -> "ManagedSigner":
        return cls(provider, await provider.get_address(chain_id))

    async def send_transaction(self, call: PreparedCall) -> str:
        return await self.provider.execute(call.chain_id, call.to, call.data, call.value)


def describe_backend(backend: Optional[SigningBackend]) -> str:
    if backend is None:
        return "none"
    return "managed" if isinstance(backend, ManagedSigner) else "wallet"
