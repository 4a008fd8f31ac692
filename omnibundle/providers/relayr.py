"""Async client for the Relayr multi-chain bundling API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .base import Provider
from ..config import settings
from ..core.execution.errors import RemoteServiceError
from ..core.bundle.models import (
    ChainStatus,
    PaymentOption,
    PrepaidBundle,
    RelayBundleUpdate,
    RelayChainUpdate,
    RelayTransaction,
)


logger = logging.getLogger(__name__)


# Relay CallState -> chain status
CALL_STATE_MAP: Dict[str, ChainStatus] = {
    "Invalid": ChainStatus.FAILED,
    "Reverted": ChainStatus.FAILED,
    "Cancelled": ChainStatus.FAILED,
    "Success": ChainStatus.CONFIRMED,
    "Mempool": ChainStatus.SUBMITTED,
    "Cancel": ChainStatus.SUBMITTED,
    "Resend": ChainStatus.SUBMITTED,
    "Included": ChainStatus.SUBMITTED,
    "Pending": ChainStatus.PENDING,
}

VIRTUAL_NONCE_MODES = ("Disabled", "ChainIndependent", "MultiChain")


class RelayrError(RemoteServiceError):
    """Relayr request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def map_call_state(call_state: Dict[str, Any]) -> RelayChainUpdate:
    """Translate one raw transaction entry from GET /v1/bundle/{id}."""
    request = call_state.get("request") or {}
    status = call_state.get("status") or {}
    state = status.get("state", "Pending")
    data = status.get("data") if isinstance(status.get("data"), dict) else {}

    error = None
    if state in ("Reverted", "Invalid"):
        error = f"Transaction {state.lower()}"
    elif state == "Cancelled":
        error = "Transaction cancelled by relay"

    project_id = data.get("project_id")
    return RelayChainUpdate(
        chain_id=int(request["chain"]),
        status=CALL_STATE_MAP.get(state, ChainStatus.PENDING),
        tx_hash=data.get("tx_hash"),
        error=error,
        project_id=int(project_id) if project_id is not None else None,
        tx_id=call_state.get("tx_uuid"),
    )


class RelayrProvider(Provider):
    name = "relayr"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        app_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.relayr_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.relayr_api_key
        self.app_id = app_id or settings.relayr_app_id
        self.timeout_s = timeout_s if timeout_s is not None else settings.relayr_timeout_seconds
        self._transport = transport

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "Relayr base URL not configured"}
        return {"status": "healthy", "baseUrl": self.base_url, "authenticated": bool(self.api_key)}

    def _headers(self) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, json=json, headers=self._headers())
            except httpx.RequestError as exc:
                raise RelayrError(f"Relayr request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            # Relayr error bodies carry a human-readable message
            try:
                message = response.json().get("message") or f"HTTP {response.status_code}"
            except ValueError:
                message = f"HTTP {response.status_code}"
            raise RelayrError(message, status_code=response.status_code)

        if not response.content:
            return {}
        return response.json()

    async def create_prepaid_bundle(
        self,
        signer_address: str,
        transactions: Iterable[RelayTransaction],
        *,
        perform_simulation: Optional[bool] = None,
    ) -> PrepaidBundle:
        """Create a bundle paid for by the user on one chain of their choice."""
        payload = {
            "transactions": [tx.to_relay() for tx in transactions],
            "perform_simulation": (
                settings.relayr_perform_simulation if perform_simulation is None else perform_simulation
            ),
            "signer_address": signer_address,
        }
        body = await self._request("POST", "/v1/bundle/prepaid", json=payload)
        if "bundle_uuid" not in body:
            raise RelayrError("Relayr prepaid response is missing bundle_uuid")

        options = tuple(PaymentOption.from_relay(option) for option in body.get("payment_options") or [])
        logger.info(
            f"Created prepaid bundle {body['bundle_uuid']} with {len(options)} payment option(s)"
        )
        return PrepaidBundle(
            bundle_id=body["bundle_uuid"],
            tx_ids=tuple(body.get("tx_uuids") or []),
            payment_options=options,
            expires_at=body.get("expires_at"),
        )

    async def create_balance_bundle(
        self,
        transactions: Iterable[RelayTransaction],
        *,
        virtual_nonce_mode: str = "MultiChain",
        perform_simulation: Optional[bool] = None,
    ) -> str:
        """Create a bundle sponsored from the app's prepaid relay balance."""
        if virtual_nonce_mode not in VIRTUAL_NONCE_MODES:
            raise ValueError(f"Unknown virtual nonce mode: {virtual_nonce_mode}")

        entries: List[Dict[str, Any]] = []
        for index, tx in enumerate(transactions):
            entry = tx.to_relay()
            if virtual_nonce_mode != "Disabled":
                entry["virtual_nonce"] = index
            entries.append(entry)

        payload = {
            "app_id": self.app_id,
            "transactions": entries,
            "virtual_nonce_mode": virtual_nonce_mode,
            "perform_simulation": (
                settings.relayr_perform_simulation if perform_simulation is None else perform_simulation
            ),
        }
        body = await self._request("POST", "/v1/bundle/balance", json=payload)
        if "bundle_uuid" not in body:
            raise RelayrError("Relayr balance response is missing bundle_uuid")
        logger.info(f"Created sponsored bundle {body['bundle_uuid']}")
        return body["bundle_uuid"]

    async def get_bundle_status(self, bundle_id: str) -> RelayBundleUpdate:
        body = await self._request("GET", f"/v1/bundle/{bundle_id}")
        return RelayBundleUpdate(
            bundle_id=body.get("bundle_uuid", bundle_id),
            chains=tuple(map_call_state(entry) for entry in body.get("transactions") or []),
            payment_received=bool(body.get("payment_received")),
        )

    async def send_bundle_payment(self, bundle_id: str, chain_id: int, signed_tx: str) -> None:
        """Hand the relay the user's signed gas payment for a prepaid bundle."""
        await self._request(
            "POST",
            "/v1/bundle/payment",
            json={"bundle_uuid": bundle_id, "chain_id": chain_id, "signed_tx": signed_tx},
        )
        logger.info(f"Submitted payment for bundle {bundle_id} on chain {chain_id}")
