import io
import json
from decimal import Decimal
from urllib.error import HTTPError, URLError

import pytest

import fx_rates
from errors import UpstreamUnavailable, ValidationFailed
from fx_rates import ExchangeRateService


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _serve(monkeypatch, payload, seen=None):
    def fake_urlopen(req, timeout=None):
        if seen is not None:
            seen.append(req.full_url)
        return _FakeResponse(json.dumps(payload).encode("utf-8"))

    monkeypatch.setattr(fx_rates, "urlopen", fake_urlopen)


def test_latest_rates_for_popular_currencies(monkeypatch):
    seen = []
    _serve(
        monkeypatch,
        {
            "result": "success",
            "base_code": "AED",
            "rates": {
                "AED": 1,
                "AUD": 0.41,
                "INR": 22.6,
                "PHP": 15.2,
                "USD": 0.2723,
                "EUR": 0.25,
            },
        },
        seen,
    )

    rates = ExchangeRateService().latest_rates("aed")

    assert seen[0].endswith("/AED")
    assert [r.code for r in rates] == ["PHP", "AED", "INR", "USD", "AUD"]
    php = rates[0]
    assert php.rate == Decimal("15.2")
    assert php.symbol == "₱"
    assert php.name == "Philippine Peso"


def test_codes_missing_from_the_response_are_skipped(monkeypatch):
    _serve(monkeypatch, {"result": "success", "rates": {"USD": 1}})
    rates = ExchangeRateService().latest_rates("USD", codes=["USD", "PHP"])
    assert [r.code for r in rates] == ["USD"]


def test_invalid_base_is_rejected_without_fetching(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("should not fetch")

    monkeypatch.setattr(fx_rates, "urlopen", fail)
    with pytest.raises(ValidationFailed):
        ExchangeRateService().latest_rates("12")


def test_unsupported_base_is_a_validation_error(monkeypatch):
    _serve(monkeypatch, {"result": "error", "error-type": "unsupported-code"})
    with pytest.raises(ValidationFailed):
        ExchangeRateService().latest_rates("ZZZ")


def test_network_failures_are_upstream_unavailable(monkeypatch):
    def offline(req, timeout=None):
        raise URLError("connection refused")

    monkeypatch.setattr(fx_rates, "urlopen", offline)
    with pytest.raises(UpstreamUnavailable):
        ExchangeRateService().latest_rates("AED")


def test_server_errors_are_upstream_unavailable(monkeypatch):
    def broken(req, timeout=None):
        raise HTTPError(req.full_url, 502, "Bad Gateway", hdrs=None, fp=None)

    monkeypatch.setattr(fx_rates, "urlopen", broken)
    with pytest.raises(UpstreamUnavailable):
        ExchangeRateService().latest_rates("AED")


def test_malformed_payload_is_upstream_unavailable(monkeypatch):
    _serve(monkeypatch, {"result": "success"})
    with pytest.raises(UpstreamUnavailable):
        ExchangeRateService().latest_rates("AED")
