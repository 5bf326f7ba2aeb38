"""Bank of Israel exchange-rate API client."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import httpx

from cartonprice.config import get_config
from cartonprice.errors import BankRateUnavailable

logger = logging.getLogger(__name__)


class BankOfIsraelClient:
    """Fetches the representative USD->ILS rate from boi.org.il."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        currency_config = get_config().currency
        self.base_url = base_url or currency_config.bank_url
        self.timeout = timeout if timeout is not None else currency_config.timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Accept": "application/json",
                "User-Agent": "cartonprice/1.0",
            },
        )

    async def fetch_usd_rate(self) -> Decimal:
        """Return today's representative USD rate.

        Raises:
            BankRateUnavailable: On timeout, HTTP error, or a payload without USD
        """
        logger.info(f"Fetching USD rate from {self.base_url}")

        try:
            async with self._client() as client:
                response = await client.get(self.base_url)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise BankRateUnavailable(f"Bank of Israel request failed: {e}") from e
        except ValueError as e:
            raise BankRateUnavailable(f"Bank of Israel returned invalid JSON: {e}") from e

        rates = (data.get("exchangeRates") or []) if isinstance(data, dict) else []
        usd = next((r for r in rates if r.get("key") == "USD"), None)
        if not usd or usd.get("currentExchangeRate") in (None, ""):
            raise BankRateUnavailable("No USD entry in Bank of Israel response")

        try:
            rate = Decimal(str(usd["currentExchangeRate"]))
        except InvalidOperation as e:
            raise BankRateUnavailable(
                f"Unparseable USD rate: {usd['currentExchangeRate']!r}"
            ) from e

        if rate <= 0:
            raise BankRateUnavailable(f"Non-positive USD rate: {rate}")

        logger.info(f"Bank of Israel USD rate: {rate}")
        return rate
