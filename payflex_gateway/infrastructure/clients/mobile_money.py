"""GSMA-style mobile money gateway client with linear backoff retry logic"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict
import httpx
from payflex_gateway.config import settings
from payflex_gateway.domain.exceptions import ProviderUnavailable
from payflex_gateway.infrastructure.observability.metrics import provider_latency_histogram, provider_failure_counter

logger = logging.getLogger(__name__)

_STATUS_MAP = {"pending": "PENDING", "success": "SUCCESS", "failed": "FAILED"}


@dataclass
class ProviderPayment:
    """Provider handle for an initialised payment"""

    transaction_id: str
    payment_url: str


class MobileMoneyClient:
    """Client for initialising and checking mobile money payments"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        username: str | None = None,
        provider: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.mobile_money_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.mobile_money_api_key
        self.username = username if username is not None else settings.mobile_money_username
        self.provider = provider or settings.mobile_money_provider
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.provider_max_retries if max_retries is None else max_retries
        self.backoff_seconds = settings.provider_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key or ''}"}
        if self.username:
            headers["Username"] = self.username
        return headers

    async def initialize_payment(
        self,
        amount: Decimal,
        currency: str,
        subscriber_phone: str,
        reference: str,
    ) -> ProviderPayment:
        """
        Initialise a payment the subscriber completes at the returned URL.

        Retry strategy:
        - Up to max_retries extra attempts (default 2)
        - Linear backoff: backoff_seconds * attempt
        - Retries on 5xx errors and network failures; the reference makes
          repeated attempts idempotent on the provider side

        Raises:
            ProviderUnavailable: On exhausted retries, 4xx, or malformed response
        """
        body = {
            "provider": self.provider,
            "amount": float(amount),
            "currency": currency,
            "subscriberPhone": subscriber_phone,
            "externalReference": reference,
        }

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with provider_latency_histogram.time():
                        response = await client.post(
                            f"{self.base_url}/v1/payments",
                            json=body,
                            headers=self._headers(),
                        )
                        response.raise_for_status()
                    data = response.json()
                    return ProviderPayment(
                        transaction_id=str(data["transactionId"]),
                        payment_url=str(data["paymentUrl"]),
                    )

                except (KeyError, TypeError, ValueError) as e:
                    raise ProviderUnavailable(f"Invalid payment response from {self.provider}: {e}") from e
                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    provider_failure_counter.inc()
                    retryable = not isinstance(e, httpx.HTTPStatusError) or e.response.status_code >= 500
                    if not retryable or attempt >= self.max_retries:
                        raise ProviderUnavailable(
                            f"Failed to initialize payment for provider {self.provider}: {e}"
                        ) from e

                attempt += 1
                logger.warning("Retrying mobile money initialisation", extra={"attempt": attempt, "reference": reference})
                await asyncio.sleep(self.backoff_seconds * attempt)

    async def check_status(self, transaction_id: str) -> str:
        """
        Fetch provider status for a transaction.

        Returns: "PENDING" | "SUCCESS" | "FAILED"
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(
                    f"{self.base_url}/v1/payments/{transaction_id}",
                    headers=self._headers(),
                )
                response.raise_for_status()
                raw_status = response.json()["status"]
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                provider_failure_counter.inc()
                raise ProviderUnavailable(f"Failed to check status for transaction {transaction_id}: {e}") from e
            except (KeyError, TypeError, ValueError) as e:
                raise ProviderUnavailable(f"Invalid status response for transaction {transaction_id}: {e}") from e

        status = _STATUS_MAP.get(str(raw_status).lower())
        if status is None:
            raise ProviderUnavailable(f"Unknown status '{raw_status}' for transaction {transaction_id}")
        return status
