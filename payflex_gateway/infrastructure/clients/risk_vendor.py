"""Risk vendor HTTP client (FraudLabs-style order verification)"""

import asyncio
import logging
import uuid
import httpx
from payflex_gateway.domain.exceptions import ExternalScoringUnavailable
from payflex_gateway.config import settings
from payflex_gateway.infrastructure.observability.metrics import risk_vendor_failure_counter

logger = logging.getLogger(__name__)


class RiskVendorClient:
    """Client for the external fraud risk scoring vendor"""

    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.risk_vendor_api_key
        self.url = url or settings.risk_vendor_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.risk_vendor_max_retries if max_retries is None else max_retries
        self.backoff_seconds = settings.risk_vendor_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.transport = transport

    async def score_order(self, email: str, phone: str, ip_address: str, amount: int) -> int:
        """
        Ask the vendor for a 0-100 risk figure for a nominal order.

        Retries transport failures and 5xx responses up to max_retries times
        with linear backoff. 4xx responses are not retried.

        Raises:
            ExternalScoringUnavailable: missing API key, exhausted retries,
                rejected request, or a response without a usable score
        """
        if not self.api_key:
            raise ExternalScoringUnavailable("Risk vendor API key is not configured")

        payload = {
            "order_id": str(uuid.uuid4()),
            "email": email,
            "ip_address": ip_address,
            "amount": amount,
            "phone": phone,
        }

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    response = await client.post(self.url, params={"key": self.api_key}, json=payload)
                    response.raise_for_status()
                    return self._parse_score(response.json())

                except httpx.HTTPStatusError as e:
                    risk_vendor_failure_counter.inc()
                    if e.response.status_code < 500 or attempt >= self.max_retries:
                        raise ExternalScoringUnavailable(f"Risk vendor error: {e.response.status_code}") from e
                except httpx.TimeoutException as e:
                    risk_vendor_failure_counter.inc()
                    if attempt >= self.max_retries:
                        raise ExternalScoringUnavailable(f"Risk vendor timeout after {self.timeout}s") from e
                except httpx.RequestError as e:
                    risk_vendor_failure_counter.inc()
                    if attempt >= self.max_retries:
                        raise ExternalScoringUnavailable(f"Risk vendor unreachable: {e}") from e

                attempt += 1
                logger.warning("Retrying risk vendor call", extra={"attempt": attempt})
                await asyncio.sleep(self.backoff_seconds * attempt)

    @staticmethod
    def _parse_score(data: object) -> int:
        try:
            score = data["is_spam_score"]  # type: ignore[index]
            value = int(round(float(score)))
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalScoringUnavailable(f"Invalid risk vendor response: {e}") from e
        if not 0 <= value <= 100:
            raise ExternalScoringUnavailable(f"Risk vendor score out of range: {value}")
        return value
