"""Exchange-rate provider client.

Calls ``{base_url}/{api_key}/latest/{code}`` and returns the
``conversion_rates`` mapping as Decimals. Transient failures (network errors,
timeouts, 5xx and 429 responses) are retried with exponential backoff and
jitter before the provider is reported unavailable.

See: https://www.exchangerate-api.com/docs/standard-requests
"""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from billing.api import metrics
from billing.shared.config import Settings
from billing.shared.errors import (
    ConfigurationMissingError,
    RateDataMalformedError,
    RateProviderUnavailableError,
)

logger = logging.getLogger(__name__)


def _is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def _is_transient(exc: BaseException) -> bool:
    """Network errors, timeouts and server-side HTTP errors are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        return _is_transient_status(exc.response.status_code)
    return isinstance(exc, httpx.TransportError)


class ExchangeRateClient:
    """Client for the exchange-rate HTTP API."""

    def __init__(
        self,
        settings: Settings,
        api_key: str | None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Application settings (base URL, timeout, attempts)
            api_key: Provider API key from the seller profile
            client: Optional preconfigured httpx client
        """
        self.settings = settings
        self._api_key = api_key
        self._base_url = settings.exchange_rate_base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=settings.exchange_rate_timeout)
        self._wait = wait_exponential_jitter(initial=1, max=10)

    def latest_rates(self, base_currency: str) -> dict[str, Decimal]:
        """Fetch the latest conversion factors from ``base_currency``.

        Args:
            base_currency: ISO 4217 code of the source currency

        Returns:
            Mapping of currency code to conversion factor

        Raises:
            ConfigurationMissingError: If no API key is configured
            RateProviderUnavailableError: After all retry attempts failed
            RateDataMalformedError: If the body lacks a ``conversion_rates`` map
        """
        if not self._api_key:
            raise ConfigurationMissingError(
                "exchange-rate API key", detail="Seller profile has no exchange_rate_api set"
            )

        base_currency = base_currency.upper()
        start = time.time()
        try:
            payload = self._get_with_retry(base_currency)
        except (httpx.HTTPError, RetryError) as e:
            metrics.exchange_rate_requests_total.labels(status="unavailable").inc()
            logger.error(f"Exchange-rate provider unavailable for {base_currency}: {e}")
            raise RateProviderUnavailableError(base_currency, str(e)) from e
        finally:
            metrics.exchange_rate_request_duration_seconds.observe(time.time() - start)

        if payload.get("result") == "error":
            metrics.exchange_rate_requests_total.labels(status="rejected").inc()
            error_type = payload.get("error-type", "unknown")
            raise RateProviderUnavailableError(base_currency, f"Provider error: {error_type}")

        rates = self._parse_rates(base_currency, payload)
        metrics.exchange_rate_requests_total.labels(status="success").inc()
        logger.info(f"Fetched {len(rates)} exchange rates for {base_currency}")
        return rates

    def rate(self, base_currency: str, target_currency: str) -> Decimal:
        """Single conversion factor from ``base_currency`` to ``target_currency``.

        Raises:
            RateDataMalformedError: If the response has no valid rate for the target code
        """
        rates = self.latest_rates(base_currency)
        target = target_currency.upper()
        if target not in rates:
            raise RateDataMalformedError(
                base_currency, f"No valid conversion rate for {target} in provider response"
            )
        return rates[target]

    def _get_with_retry(self, base_currency: str) -> dict[str, Any]:
        url = f"{self._base_url}/{self._api_key}/latest/{base_currency}"
        retrying = Retrying(
            retry=retry_if_exception(_is_transient),
            wait=self._wait,
            stop=stop_after_attempt(self.settings.exchange_rate_max_attempts),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                response = self._client.get(url)
                payload = self._read_body(base_currency, response)
        if not isinstance(payload, dict):
            raise RateDataMalformedError(base_currency, "Body is not a JSON object")
        return payload

    @staticmethod
    def _read_body(base_currency: str, response: httpx.Response) -> Any:
        """JSON body of ``response``.

        A non-retryable error status whose body is a provider error
        (``"result": "error"``) is returned as is so its ``error-type`` reaches
        the caller. Any other error status raises ``HTTPStatusError``.
        """
        if response.is_error and not _is_transient_status(response.status_code):
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("result") == "error":
                return body
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise RateDataMalformedError(base_currency, f"Body is not JSON: {e}") from e

    @staticmethod
    def _parse_rates(base_currency: str, payload: dict[str, Any]) -> dict[str, Decimal]:
        """Usable factors from ``conversion_rates``.

        Entries that are not finite positive numbers are dropped with a
        warning; ``rate()`` reports the target code if it was one of them.
        """
        raw = payload.get("conversion_rates")
        if not isinstance(raw, dict) or not raw:
            raise RateDataMalformedError(base_currency, "Missing 'conversion_rates' mapping")

        rates: dict[str, Decimal] = {}
        for code, factor in raw.items():
            value = _to_factor(factor)
            if value is None:
                logger.warning(f"Ignoring invalid {base_currency} rate for {code}: {factor!r}")
                continue
            rates[str(code).upper()] = value
        return rates


def _to_factor(factor: object) -> Decimal | None:
    if isinstance(factor, bool) or not isinstance(factor, int | float | str):
        return None
    try:
        value = Decimal(str(factor))
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value
