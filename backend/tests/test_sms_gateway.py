from __future__ import annotations

import httpx
import pytest

from estatehub.services.sms import SmsGateway, normalize_for_provider

from conftest import make_settings


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _configured(**overrides):
    defaults = dict(sms_api_user="gateway-user", sms_api_password="gateway-pass")
    defaults.update(overrides)
    return make_settings(**defaults)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+919876543210", "9876543210"),
        ("919876543210", "9876543210"),
        ("98765 43210", "9876543210"),
        ("9198248449609", "9198248449609"),
        ("", ""),
    ],
)
def test_normalize_for_provider(raw, expected):
    assert normalize_for_provider(raw) == expected


def test_send_builds_provider_request():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="OK")

    gateway = SmsGateway(_configured(environment="production"), client=_client(handler))
    assert gateway.send_otp("+919876543210", "4821") is True

    params = seen[0].url.params
    assert params["number"] == "9876543210"
    assert params["user"] == "gateway-user"
    assert params["senderid"] == "SATZTH"
    assert params["channel"] == "Trans"
    assert params["route"] == "10"
    assert "4821" in params["text"]


def test_production_reports_provider_rejection():
    gateway = SmsGateway(
        _configured(environment="production"),
        client=_client(lambda request: httpx.Response(500, text="gateway down")),
    )
    assert gateway.send_otp("9876543210", "4821") is False


def test_production_reports_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = SmsGateway(_configured(environment="production"), client=_client(handler))
    assert gateway.send_otp("9876543210", "4821") is False


@pytest.mark.parametrize(("environment", "expected"), [("production", False), ("development", True)])
def test_malformed_provider_url_is_a_failed_delivery(environment, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request should be built for a malformed URL")

    gateway = SmsGateway(
        _configured(environment=environment, sms_api_url="http://[::1"),
        client=_client(handler),
    )
    assert gateway.send_otp("9876543210", "4821") is expected


@pytest.mark.parametrize(("environment", "expected"), [("production", False), ("development", True)])
def test_unexpected_client_error_is_a_failed_delivery(environment, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("transport blew up")

    gateway = SmsGateway(_configured(environment=environment), client=_client(handler))
    assert gateway.send_otp("9876543210", "4821") is expected


def test_production_without_credentials_fails():
    gateway = SmsGateway(make_settings(environment="production"))
    assert gateway.send_otp("9876543210", "4821") is False


def test_bypass_without_credentials_logs_code(caplog):
    gateway = SmsGateway(make_settings(environment="development"))
    with caplog.at_level("WARNING", logger="estatehub.services.sms"):
        assert gateway.send_otp("9876543210", "1234") is True
    assert "1234" in caplog.text


def test_bypass_swallows_provider_failures():
    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    rejecting = SmsGateway(_configured(), client=_client(lambda request: httpx.Response(400)))
    timing_out = SmsGateway(_configured(), client=_client(broken))
    assert rejecting.send_otp("9876543210", "1234") is True
    assert timing_out.send_otp("9876543210", "1234") is True


def test_empty_number_is_never_sent():
    gateway = SmsGateway(make_settings(environment="development"))
    assert gateway.send_otp(" - ", "1234") is False
