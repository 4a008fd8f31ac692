"""
EVM JSON-RPC provider.

Reads (eth_call, balances, nonces) use a bounded timeout and are retried once
on transport failure. Writes are never retried here.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import function_signature_to_4byte_selector, to_hex

from .base import Provider
from ..config import settings
from ..core.execution.errors import RemoteServiceError


logger = logging.getLogger(__name__)


class RpcError(RemoteServiceError):
    """JSON-RPC call failed."""

    def __init__(self, message: str, chain_id: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.chain_id = chain_id
        self.code = code


class ReceiptTimeoutError(RpcError):
    """No receipt arrived before the confirmation deadline."""
    pass


@dataclass
class TransactionReceipt:
    tx_hash: str
    success: bool
    block_number: int
    gas_used: int
    logs: List[Dict[str, Any]]

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "TransactionReceipt":
        return cls(
            tx_hash=payload.get("transactionHash", ""),
            success=int(payload.get("status", "0x1"), 16) == 1,
            block_number=int(payload.get("blockNumber", "0x0"), 16),
            gas_used=int(payload.get("gasUsed", "0x0"), 16),
            logs=list(payload.get("logs") or []),
        )


class RpcProvider(Provider):
    name = "rpc"

    READ_METHODS = frozenset({
        "eth_call",
        "eth_chainId",
        "eth_getBalance",
        "eth_getTransactionCount",
        "eth_getTransactionReceipt",
        "eth_estimateGas",
        "eth_gasPrice",
        "eth_maxPriorityFeePerGas",
        "eth_blockNumber",
    })

    def __init__(
        self,
        rpc_urls: Optional[Dict[int, str]] = None,
        *,
        timeout_s: Optional[float] = None,
        retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._rpc_urls = dict(rpc_urls if rpc_urls is not None else settings.rpc_urls)
        self.timeout_s = timeout_s if timeout_s is not None else settings.rpc_timeout_seconds
        self.retries = retries if retries is not None else settings.rpc_retries
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    async def ready(self) -> bool:
        return bool(self._rpc_urls)

    async def health_check(self) -> Dict[str, Any]:
        chains: Dict[str, Any] = {}
        for chain_id in self._rpc_urls:
            try:
                chains[str(chain_id)] = int(await self.rpc_call(chain_id, "eth_chainId", []), 16)
            except (RpcError, httpx.HTTPError) as exc:
                chains[str(chain_id)] = f"error: {exc}"
        return {"status": "healthy" if chains else "disabled", "chains": chains}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)
        return self._client

    async def rpc_call(self, chain_id: int, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC call, retrying reads on transport errors."""
        rpc_url = self._rpc_urls.get(chain_id)
        if not rpc_url:
            raise RpcError(f"No RPC URL configured for chain {chain_id}", chain_id=chain_id)

        attempts = 1 + (self.retries if method in self.READ_METHODS else 0)
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            self._request_id += 1
            payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
            try:
                response = await self._get_client().post(rpc_url, json=payload)
                response.raise_for_status()
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_error = exc
                if attempt + 1 < attempts:
                    logger.warning(f"RPC {method} on chain {chain_id} failed ({exc!r}), retrying")
                continue
            except httpx.HTTPStatusError as exc:
                raise RpcError(
                    f"RPC {method} on chain {chain_id} returned HTTP {exc.response.status_code}",
                    chain_id=chain_id,
                ) from exc

            body = response.json()
            if "error" in body and body["error"]:
                error = body["error"]
                message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                code = error.get("code") if isinstance(error, dict) else None
                raise RpcError(f"RPC error on chain {chain_id}: {message}", chain_id=chain_id, code=code)
            return body.get("result")

        raise RpcError(
            f"RPC {method} on chain {chain_id} failed after {attempts} attempt(s): {last_error}",
            chain_id=chain_id,
        )

    async def read_contract(
        self,
        chain_id: int,
        to: str,
        signature: str,
        arg_types: Sequence[str],
        args: Sequence[Any],
        return_types: Sequence[str],
    ) -> tuple:
        """ABI-encode a view call, run eth_call and decode the result."""
        data = function_signature_to_4byte_selector(signature) + abi_encode(list(arg_types), list(args))
        result = await self.rpc_call(chain_id, "eth_call", [{"to": to, "data": to_hex(data)}, "latest"])
        if not result or result == "0x":
            raise RpcError(f"Empty eth_call result from {to} ({signature})", chain_id=chain_id)
        return tuple(abi_decode(list(return_types), bytes.fromhex(result[2:])))

    async def get_balance(self, chain_id: int, address: str) -> int:
        result = await self.rpc_call(chain_id, "eth_getBalance", [address, "latest"])
        return int(result, 16)

    async def get_transaction_count(self, chain_id: int, address: str) -> int:
        result = await self.rpc_call(chain_id, "eth_getTransactionCount", [address, "pending"])
        return int(result, 16)

    async def estimate_gas(self, chain_id: int, tx: Dict[str, Any]) -> int:
        return int(await self.rpc_call(chain_id, "eth_estimateGas", [tx]), 16)

    async def get_fee_params(self, chain_id: int) -> Dict[str, int]:
        """EIP-1559 fee params: max fee is twice the gas price plus the tip."""
        gas_price = int(await self.rpc_call(chain_id, "eth_gasPrice", []), 16)
        try:
            priority = int(await self.rpc_call(chain_id, "eth_maxPriorityFeePerGas", []), 16)
        except RpcError:
            priority = 1_000_000_000
        return {"maxFeePerGas": gas_price * 2 + priority, "maxPriorityFeePerGas": priority}

    async def send_raw_transaction(self, chain_id: int, signed_tx: str) -> str:
        tx_hash = await self.rpc_call(chain_id, "eth_sendRawTransaction", [signed_tx])
        logger.info(f"Transaction submitted on chain {chain_id}: {tx_hash}")
        return tx_hash

    async def get_receipt(self, chain_id: int, tx_hash: str) -> Optional[TransactionReceipt]:
        result = await self.rpc_call(chain_id, "eth_getTransactionReceipt", [tx_hash])
        return TransactionReceipt.from_rpc(result) if result else None

    async def wait_for_receipt(
        self,
        chain_id: int,
        tx_hash: str,
        *,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ) -> TransactionReceipt:
        """Poll until the transaction is mined or the deadline passes."""
        timeout = timeout_s if timeout_s is not None else settings.receipt_timeout_seconds
        interval = poll_interval_s if poll_interval_s is not None else settings.receipt_poll_interval_seconds
        deadline = time.monotonic() + timeout

        while True:
            try:
                receipt = await self.get_receipt(chain_id, tx_hash)
            except RpcError as exc:
                logger.warning(f"Error checking receipt for {tx_hash} on chain {chain_id}: {exc}")
                receipt = None

            if receipt is not None:
                return receipt
            if time.monotonic() >= deadline:
                raise ReceiptTimeoutError(
                    f"Confirmation timeout after {timeout}s for {tx_hash}",
                    chain_id=chain_id,
                )
            await asyncio.sleep(interval)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
