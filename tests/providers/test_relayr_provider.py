"""
Tests for the Relayr bundling relay client.
"""

import json

import httpx
import pytest

from omnibundle.core.bundle import RelayTransaction
from omnibundle.core.execution import ChainStatus
from omnibundle.providers.relayr import RelayrError, RelayrProvider, map_call_state


BUNDLE_ID = "4b1c5f3e-0000-4000-8000-000000000001"
SIGNER = "0x1234567890123456789012345678901234567890"

TRANSACTIONS = [
    RelayTransaction(chain_id=1, target="0xc29d6995ab3b0df4650ad643adeac55e7acbb566", data="0x01"),
    RelayTransaction(chain_id=10, target="0xc29d6995ab3b0df4650ad643adeac55e7acbb566", data="0x02", value=5),
]


def _provider(handler) -> RelayrProvider:
    return RelayrProvider(
        base_url="https://relayr.test",
        api_key="secret",
        app_id="test-app",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_create_prepaid_bundle():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["api_key"] = request.headers.get("x-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "bundle_uuid": BUNDLE_ID,
            "tx_uuids": ["tx-1", "tx-2"],
            "payment_options": [
                {"chainId": 10, "token": "0x000000000000000000000000000000000000EEEe",
                 "amount": "420000000000000", "estimatedGas": "210000"},
                {"chainId": 1, "amount": "9000000000000000"},
            ],
            "expires_at": 1_700_000_600,
        })

    bundle = await _provider(handler).create_prepaid_bundle(SIGNER, TRANSACTIONS, perform_simulation=True)

    assert seen["path"] == "/v1/bundle/prepaid"
    assert seen["api_key"] == "secret"
    assert seen["body"]["signer_address"] == SIGNER
    assert seen["body"]["perform_simulation"] is True
    assert seen["body"]["transactions"][1] == {
        "chain": 10,
        "target": "0xc29d6995ab3b0df4650ad643adeac55e7acbb566",
        "data": "0x02",
        "value": "5",
    }
    assert bundle.bundle_id == BUNDLE_ID
    assert bundle.tx_ids == ("tx-1", "tx-2")
    assert [o.chain_id for o in bundle.payment_options] == [10, 1]
    assert bundle.payment_options[0].amount == 420000000000000
    assert bundle.payment_options[0].estimated_gas == 210000
    assert bundle.expires_at == 1_700_000_600


@pytest.mark.asyncio
async def test_create_balance_bundle_assigns_virtual_nonces():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"bundle_uuid": BUNDLE_ID})

    bundle_id = await _provider(handler).create_balance_bundle(TRANSACTIONS)

    assert bundle_id == BUNDLE_ID
    assert seen["path"] == "/v1/bundle/balance"
    assert seen["body"]["app_id"] == "test-app"
    assert seen["body"]["virtual_nonce_mode"] == "MultiChain"
    assert [tx["virtual_nonce"] for tx in seen["body"]["transactions"]] == [0, 1]


@pytest.mark.asyncio
async def test_unknown_virtual_nonce_mode_rejected():
    with pytest.raises(ValueError):
        await _provider(lambda request: httpx.Response(200)).create_balance_bundle(
            TRANSACTIONS, virtual_nonce_mode="Sometimes",
        )


@pytest.mark.asyncio
async def test_get_bundle_status_maps_call_states():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"/v1/bundle/{BUNDLE_ID}"
        return httpx.Response(200, json={
            "bundle_uuid": BUNDLE_ID,
            "payment_received": True,
            "transactions": [
                {"tx_uuid": "tx-1", "request": {"chain": 1},
                 "status": {"state": "Success", "data": {"tx_hash": "0xaaa", "project_id": 55}}},
                {"tx_uuid": "tx-2", "request": {"chain": 10},
                 "status": {"state": "Reverted", "data": {"tx_hash": "0xbbb"}}},
                {"tx_uuid": "tx-3", "request": {"chain": 8453}, "status": {"state": "Mempool"}},
            ],
        })

    update = await _provider(handler).get_bundle_status(BUNDLE_ID)

    assert update.bundle_id == BUNDLE_ID
    assert update.payment_received is True
    assert update.chain_ids == [1, 10, 8453]
    confirmed, reverted, mempool = update.chains
    assert confirmed.status == ChainStatus.CONFIRMED
    assert confirmed.tx_hash == "0xaaa"
    assert confirmed.project_id == 55
    assert reverted.status == ChainStatus.FAILED
    assert reverted.error == "Transaction reverted"
    assert mempool.status == ChainStatus.SUBMITTED
    assert mempool.tx_hash is None


@pytest.mark.parametrize("state,expected", [
    ("Pending", ChainStatus.PENDING),
    ("Included", ChainStatus.SUBMITTED),
    ("Resend", ChainStatus.SUBMITTED),
    ("Cancel", ChainStatus.SUBMITTED),
    ("Cancelled", ChainStatus.FAILED),
    ("Invalid", ChainStatus.FAILED),
    ("SomethingNew", ChainStatus.PENDING),
])
def test_call_state_mapping(state, expected):
    update = map_call_state({"request": {"chain": 1}, "status": {"state": state}})
    assert update.status == expected


@pytest.mark.asyncio
async def test_send_bundle_payment():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200)

    await _provider(handler).send_bundle_payment(BUNDLE_ID, 10, "0xf86c")

    assert seen["path"] == "/v1/bundle/payment"
    assert seen["body"] == {"bundle_uuid": BUNDLE_ID, "chain_id": 10, "signed_tx": "0xf86c"}


@pytest.mark.asyncio
async def test_error_body_message_surfaced():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "simulation failed on chain 10"})

    with pytest.raises(RelayrError) as exc_info:
        await _provider(handler).get_bundle_status(BUNDLE_ID)

    assert exc_info.value.status_code == 422
    assert str(exc_info.value) == "simulation failed on chain 10"


@pytest.mark.asyncio
async def test_transport_failure_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RelayrError):
        await _provider(handler).get_bundle_status(BUNDLE_ID)


@pytest.mark.asyncio
async def test_missing_bundle_uuid_rejected():
    with pytest.raises(RelayrError):
        await _provider(lambda request: httpx.Response(200, json={})).create_prepaid_bundle(SIGNER, TRANSACTIONS)


@pytest.mark.asyncio
async def test_health_check():
    provider = _provider(lambda request: httpx.Response(200))
    assert (await provider.health_check())["authenticated"] is True

    disabled = _provider(lambda request: httpx.Response(200))
    disabled.base_url = ""
    assert (await disabled.health_check())["status"] == "disabled"
