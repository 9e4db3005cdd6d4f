from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from config import get_settings
from currency import currency_symbol
from errors import UpstreamUnavailable, ValidationFailed

logger = logging.getLogger(__name__)

POPULAR_CURRENCIES: dict[str, str] = {
    "PHP": "Philippine Peso",
    "AED": "United Arab Emirates Dirham",
    "INR": "Indian Rupee",
    "USD": "US Dollar",
    "AUD": "Australian Dollar",
}


@dataclass(frozen=True)
class ExchangeRate:
    code: str
    name: str
    symbol: str
    rate: Decimal  # units of ``code`` per 1 base


class ExchangeRateService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def latest_rates(
        self, base: str, codes: Iterable[str] = tuple(POPULAR_CURRENCIES)
    ) -> list[ExchangeRate]:
        base = (base or "").strip().upper()
        if len(base) != 3 or not base.isalpha():
            raise ValidationFailed("Invalid currency code", field="base")

        payload = _fetch_latest(
            f"{self.settings.fx_base_url}/{base}",
            timeout=self.settings.fx_timeout_secs,
        )
        if payload.get("result") == "error":
            if payload.get("error-type") == "unsupported-code":
                raise ValidationFailed(f"Unsupported currency: {base}", field="base")
            logger.warning(
                f"fx_fetch_failed: base={base} reason={payload.get('error-type')}"
            )
            raise UpstreamUnavailable("Failed to fetch exchange rates")

        rates = payload.get("rates")
        if not isinstance(rates, dict):
            logger.warning(f"fx_fetch_failed: base={base} reason=missing_rates")
            raise UpstreamUnavailable("Unexpected exchange-rate response")

        result = []
        for code in codes:
            if code not in rates:
                continue
            try:
                rate = Decimal(str(rates[code]))
            except InvalidOperation as exc:
                raise UpstreamUnavailable("Unexpected exchange-rate response") from exc
            result.append(
                ExchangeRate(
                    code=code,
                    name=POPULAR_CURRENCIES.get(code, code),
                    symbol=currency_symbol(code),
                    rate=rate,
                )
            )
        return result


def _fetch_latest(url: str, *, timeout: float) -> dict:
    req = Request(url, headers={"Accept": "application/json"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        if exc.code == 404:
            return {"result": "error", "error-type": "unsupported-code"}
        logger.warning(f"fx_fetch_failed: url={url} status={exc.code}")
        raise UpstreamUnavailable("Failed to fetch exchange rates") from exc
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        logger.warning(f"fx_fetch_failed: url={url} error={exc}")
        raise UpstreamUnavailable("Failed to fetch exchange rates") from exc

    if not isinstance(payload, dict):
        raise UpstreamUnavailable("Unexpected exchange-rate response")
    return payload
