"""Unit tests for the outbound HTTP clients using httpx.MockTransport"""

import json
import httpx
import pytest
from decimal import Decimal
from payflex_gateway.domain.exceptions import ExternalScoringUnavailable, ProviderUnavailable
from payflex_gateway.infrastructure.clients.mobile_money import MobileMoneyClient
from payflex_gateway.infrastructure.clients.risk_vendor import RiskVendorClient

VENDOR_URL = "https://risk.example.com/v2/order/screen"
PROVIDER_URL = "https://momo.example.com"


def vendor_client(handler, api_key: str | None = "test-key", max_retries: int = 2) -> RiskVendorClient:
    return RiskVendorClient(
        api_key=api_key,
        url=VENDOR_URL,
        max_retries=max_retries,
        backoff_seconds=0,
        transport=httpx.MockTransport(handler),
    )


def momo_client(handler, max_retries: int = 2) -> MobileMoneyClient:
    return MobileMoneyClient(
        base_url=PROVIDER_URL,
        api_key="momo-key",
        username="payflex",
        provider="ORANGE",
        max_retries=max_retries,
        backoff_seconds=0,
        transport=httpx.MockTransport(handler),
    )


async def test_vendor_parses_spam_score():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"is_spam_score": 42.4})

    score = await vendor_client(handler).score_order("a@example.com", "71000001", "10.0.0.1", 100)

    assert score == 42
    request = seen[0]
    assert request.url.params["key"] == "test-key"
    body = json.loads(request.content)
    assert body["email"] == "a@example.com"
    assert body["phone"] == "71000001"
    assert body["ip_address"] == "10.0.0.1"
    assert body["amount"] == 100
    assert body["order_id"]


async def test_vendor_without_api_key_fails_without_calling():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"is_spam_score": 0})

    with pytest.raises(ExternalScoringUnavailable):
        await vendor_client(handler, api_key="").score_order("a@example.com", "1", "10.0.0.1", 100)

    assert calls == []


async def test_vendor_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": "bad key"})

    with pytest.raises(ExternalScoringUnavailable):
        await vendor_client(handler).score_order("a@example.com", "1", "10.0.0.1", 100)

    assert len(calls) == 1


async def test_vendor_server_error_retried_then_succeeds():
    responses = iter([httpx.Response(503), httpx.Response(200, json={"is_spam_score": 7})])

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    assert await vendor_client(handler).score_order("a@example.com", "1", "10.0.0.1", 100) == 7


async def test_vendor_exhausted_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(ExternalScoringUnavailable):
        await vendor_client(handler, max_retries=2).score_order("a@example.com", "1", "10.0.0.1", 100)

    assert len(calls) == 3


async def test_vendor_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalScoringUnavailable):
        await vendor_client(handler, max_retries=0).score_order("a@example.com", "1", "10.0.0.1", 100)


@pytest.mark.parametrize("payload", [{}, {"is_spam_score": "high"}, {"is_spam_score": 150}, [1, 2]])
async def test_vendor_unusable_score(payload):
    """A missing or nonsensical score is an outage, never a zero"""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(ExternalScoringUnavailable):
        await vendor_client(handler).score_order("a@example.com", "1", "10.0.0.1", 100)


async def test_mobile_money_initialize_payment():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"transactionId": "tx-1", "paymentUrl": "https://pay/tx-1"})

    payment = await momo_client(handler).initialize_payment(Decimal("75.50"), "BWP", "71000001", "ref-1")

    assert payment.transaction_id == "tx-1"
    assert payment.payment_url == "https://pay/tx-1"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == f"{PROVIDER_URL}/v1/payments"
    assert request.headers["Authorization"] == "Bearer momo-key"
    assert request.headers["Username"] == "payflex"
    assert json.loads(request.content) == {
        "provider": "ORANGE",
        "amount": 75.5,
        "currency": "BWP",
        "subscriberPhone": "71000001",
        "externalReference": "ref-1",
    }


async def test_mobile_money_retries_server_errors():
    references = []
    responses = iter([
        httpx.Response(502),
        httpx.Response(503),
        httpx.Response(200, json={"transactionId": "tx-2", "paymentUrl": "https://pay/tx-2"}),
    ])

    def handler(request: httpx.Request) -> httpx.Response:
        references.append(json.loads(request.content)["externalReference"])
        return next(responses)

    payment = await momo_client(handler).initialize_payment(Decimal("10"), "BWP", "71000001", "ref-2")

    assert payment.transaction_id == "tx-2"
    assert references == ["ref-2", "ref-2", "ref-2"]


async def test_mobile_money_gives_up_after_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(ProviderUnavailable):
        await momo_client(handler, max_retries=1).initialize_payment(Decimal("10"), "BWP", "71000001", "ref-3")

    assert len(calls) == 2


async def test_mobile_money_rejection_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": "invalid subscriber"})

    with pytest.raises(ProviderUnavailable):
        await momo_client(handler).initialize_payment(Decimal("10"), "BWP", "000", "ref-4")

    assert len(calls) == 1


async def test_mobile_money_malformed_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(ProviderUnavailable):
        await momo_client(handler).initialize_payment(Decimal("10"), "BWP", "71000001", "ref-5")


@pytest.mark.parametrize("raw,expected", [("pending", "PENDING"), ("SUCCESS", "SUCCESS"), ("Failed", "FAILED")])
async def test_mobile_money_status_mapping(raw: str, expected: str):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/payments/tx-9"
        return httpx.Response(200, json={"status": raw})

    assert await momo_client(handler).check_status("tx-9") == expected


async def test_mobile_money_unknown_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "reversed"})

    with pytest.raises(ProviderUnavailable):
        await momo_client(handler).check_status("tx-9")


async def test_mobile_money_status_outage():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(ProviderUnavailable):
        await momo_client(handler).check_status("tx-9")
