"""Client for the managed (custodial smart-account) wallet backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .base import Provider
from ..config import settings
from ..core.execution.errors import RemoteServiceError


logger = logging.getLogger(__name__)


class ManagedWalletError(RemoteServiceError):
    """Managed wallet backend rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ManagedWalletProvider(Provider):
    """The server holds signing authority; it executes calls on the user's behalf."""

    name = "managed_wallet"
    timeout_s = 60

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.managed_wallet_base_url).rstrip("/")
        self.token = token if token is not None else settings.managed_wallet_token
        self._transport = transport

    async def ready(self) -> bool:
        return bool(self.base_url and self.token)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "Managed wallet backend not configured"}
        return {"status": "healthy", "baseUrl": self.base_url}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not await self.ready():
            raise ManagedWalletError("Managed wallet backend is not configured")

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    headers={"authorization": f"Bearer {self.token}"},
                )
            except httpx.RequestError as exc:
                raise ManagedWalletError(f"Managed wallet request to {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        # Envelope: {success, data} or {success: false, error}
        if response.status_code >= 400 or not body.get("success", False):
            message = body.get("error") or f"HTTP {response.status_code}"
            raise ManagedWalletError(message, status_code=response.status_code)
        return body.get("data") or {}

    async def get_address(self, chain_id: int = 1) -> str:
        data = await self._request("GET", "/wallet/address", params={"chainId": chain_id})
        return data["address"]

    async def execute(self, chain_id: int, to: str, data: str, value: int = 0) -> str:
        """Execute a call through the user's smart account and return its tx hash."""
        result = await self._request(
            "POST",
            "/wallet/execute",
            json={"chainId": chain_id, "to": to, "data": data, "value": str(value)},
        )
        tx_hash = result.get("txHash")
        if not tx_hash:
            raise ManagedWalletError("Managed wallet response is missing txHash")
        logger.info(f"Managed wallet executed call on chain {chain_id}: {tx_hash}")
        return tx_hash
