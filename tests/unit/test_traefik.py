"""Tests for the Traefik health checks."""

from __future__ import annotations

import logging
import time
from unittest.mock import patch

import httpx
import pytest

from tests.conftest import (
    HEALTH_URL,
    PROVIDERS_URL,
    TRAEFIK_HOST,
    FakeUpstream,
    TrickleBody,
    health_payload,
    providers_payload,
)
from traefik_healthcheck.config import ProxyTarget
from traefik_healthcheck.exceptions import ProbeError
from traefik_healthcheck.traefik import ProviderSnapshot, TraefikProber, UptimeSnapshot

TARGET = ProxyTarget(host=TRAEFIK_HOST, min_services=1)
ENTRYPOINT = "https://traefik-a:443/"


class TestProviderSnapshot:
    """Tests for ProviderSnapshot.from_payload."""

    def test_counts_names(self) -> None:
        snapshot = ProviderSnapshot.from_payload(providers_payload(backends=3, frontends=2))
        assert len(snapshot.backends) == 3
        assert len(snapshot.frontends) == 2

    def test_missing_provider_counts_zero(self) -> None:
        snapshot = ProviderSnapshot.from_payload({"file": {"backends": {"a": {}}}})
        assert snapshot.backends == frozenset()
        assert snapshot.frontends == frozenset()

    def test_null_sections_count_zero(self) -> None:
        snapshot = ProviderSnapshot.from_payload(
            {"consul_catalog": {"backends": None, "frontends": None}}
        )
        assert snapshot == ProviderSnapshot(frozenset(), frozenset())

    def test_other_provider(self) -> None:
        payload = providers_payload(backends=1, frontends=1, provider="docker")
        snapshot = ProviderSnapshot.from_payload(payload, provider="docker")
        assert snapshot.backends == frozenset({"backend-svc0"})

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            "consul_catalog",
            {"consul_catalog": ["backend"]},
            {"consul_catalog": {"backends": ["a", "b"]}},
            {"consul_catalog": []},
            {"consul_catalog": ""},
            {"consul_catalog": 0},
            {"consul_catalog": {"backends": [], "frontends": {}}},
            {"consul_catalog": {"backends": {}, "frontends": ""}},
        ],
    )
    def test_malformed_payload(self, payload: object) -> None:
        with pytest.raises(ValueError):
            ProviderSnapshot.from_payload(payload)


class TestUptimeSnapshot:
    """Tests for UptimeSnapshot."""

    def test_from_payload(self) -> None:
        assert UptimeSnapshot.from_payload(health_payload(12.5)).uptime_sec == 12.5

    def test_integer_uptime(self) -> None:
        assert UptimeSnapshot.from_payload({"uptime_sec": 7}).uptime_sec == 7.0

    @pytest.mark.parametrize("payload", [{}, {"uptime_sec": "12"}, {"uptime_sec": True}, []])
    def test_malformed_payload(self, payload: object) -> None:
        with pytest.raises(ValueError):
            UptimeSnapshot.from_payload(payload)

    def test_exceeds_is_strict(self) -> None:
        assert UptimeSnapshot(100.0).exceeds(100) is False
        assert UptimeSnapshot(101.0).exceeds(100) is True

    def test_exceeds_uses_whole_seconds(self) -> None:
        assert UptimeSnapshot(100.9).exceeds(100) is False


class TestCheckProviders:
    """Tests for TraefikProber.check_providers."""

    def test_enough_services(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload(backends=2, frontends=2))
        prober = TraefikProber(client=upstream.client())

        assert prober.check_providers(TARGET) is True

    def test_exactly_min_services(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload(backends=1, frontends=1))
        prober = TraefikProber(client=upstream.client())

        assert prober.check_providers(TARGET) is True

    def test_too_few_backends(
        self, upstream: FakeUpstream, caplog: pytest.LogCaptureFixture
    ) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload(backends=0, frontends=2))
        prober = TraefikProber(client=upstream.client())

        with caplog.at_level(logging.WARNING):
            assert prober.check_providers(TARGET) is False
        assert "No backends found in Traefik" in caplog.text

    def test_too_few_frontends(
        self, upstream: FakeUpstream, caplog: pytest.LogCaptureFixture
    ) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload(backends=2, frontends=0))
        prober = TraefikProber(client=upstream.client())

        with caplog.at_level(logging.WARNING):
            assert prober.check_providers(TARGET) is False
        assert "No frontends found in Traefik" in caplog.text

    def test_zero_min_services_accepts_empty(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json={})
        prober = TraefikProber(client=upstream.client())

        assert prober.check_providers(ProxyTarget(host=TRAEFIK_HOST)) is True

    def test_non_200(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, status_code=404)
        prober = TraefikProber(client=upstream.client())

        assert prober.check_providers(ProxyTarget(host=TRAEFIK_HOST)) is False

    def test_invalid_json(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, content=b"<html>")
        prober = TraefikProber(client=upstream.client())

        assert prober.check_providers(ProxyTarget(host=TRAEFIK_HOST)) is False

    def test_unreachable(self, upstream: FakeUpstream) -> None:
        upstream.add_error(PROVIDERS_URL)
        prober = TraefikProber(client=upstream.client())

        assert prober.check_providers(ProxyTarget(host=TRAEFIK_HOST)) is False

    def test_fetch_providers_malformed_raises_probe_error(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json={"consul_catalog": "oops"})
        prober = TraefikProber(client=upstream.client())

        with pytest.raises(ProbeError, match="Malformed providers payload"):
            prober.fetch_providers(TRAEFIK_HOST)


class TestCheckUptime:
    """Tests for TraefikProber.check_uptime."""

    def test_below_ttl(self, upstream: FakeUpstream) -> None:
        upstream.add(HEALTH_URL, json=health_payload(50.0))
        prober = TraefikProber(client=upstream.client())

        assert prober.check_uptime(TARGET, 100) is True

    def test_equal_to_ttl(self, upstream: FakeUpstream) -> None:
        upstream.add(HEALTH_URL, json=health_payload(100.0))
        prober = TraefikProber(client=upstream.client())

        assert prober.check_uptime(TARGET, 100) is True

    def test_above_ttl(self, upstream: FakeUpstream, caplog: pytest.LogCaptureFixture) -> None:
        upstream.add(HEALTH_URL, json=health_payload(101.0))
        prober = TraefikProber(client=upstream.client())

        with caplog.at_level(logging.WARNING):
            assert prober.check_uptime(TARGET, 100) is False
        assert "reached max ttl of 100" in caplog.text

    def test_undecodable_health(self, upstream: FakeUpstream) -> None:
        upstream.add(HEALTH_URL, json={"uptime": "10m"})
        prober = TraefikProber(client=upstream.client())

        assert prober.check_uptime(TARGET, 100) is False

    def test_health_non_200(self, upstream: FakeUpstream) -> None:
        upstream.add(HEALTH_URL, status_code=503)
        prober = TraefikProber(client=upstream.client())

        assert prober.check_uptime(TARGET, 100) is False


class TestCheckEntrypoint:
    """Tests for TraefikProber.check_entrypoint."""

    @pytest.mark.parametrize("status_code", [200, 301, 401, 403, 404])
    def test_tolerated_statuses(self, upstream: FakeUpstream, status_code: int) -> None:
        upstream.add(ENTRYPOINT, status_code=status_code)
        prober = TraefikProber(client=upstream.client())

        assert prober.check_entrypoint(ENTRYPOINT) is True

    @pytest.mark.parametrize("status_code", [500, 502, 503, 504])
    def test_server_errors(self, upstream: FakeUpstream, status_code: int) -> None:
        upstream.add(ENTRYPOINT, status_code=status_code)
        prober = TraefikProber(client=upstream.client())

        assert prober.check_entrypoint(ENTRYPOINT) is False

    def test_unreachable(self, upstream: FakeUpstream) -> None:
        upstream.add_error(ENTRYPOINT, httpx.ConnectTimeout)
        prober = TraefikProber(client=upstream.client())

        assert prober.check_entrypoint(ENTRYPOINT) is False

    def test_streaming_body_not_waited_for(self, upstream: FakeUpstream) -> None:
        body = TrickleBody(delay=0.5)
        upstream.add_stream(ENTRYPOINT, body)
        prober = TraefikProber(client=upstream.client(timeout=1.0))

        started = time.monotonic()
        assert prober.check_entrypoint(ENTRYPOINT) is True

        assert time.monotonic() - started < 1.0
        assert body.produced == 0

    def test_invalid_url(self, upstream: FakeUpstream, caplog: pytest.LogCaptureFixture) -> None:
        prober = TraefikProber(client=upstream.client())

        with caplog.at_level(logging.WARNING):
            assert prober.check_entrypoint("http://[::1/") is False

        assert "Error contacting traefik entrypoint" in caplog.text


class TestIsHealthy:
    """Tests for TraefikProber.is_healthy."""

    def test_all_checks_pass(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload())
        upstream.add(HEALTH_URL, json=health_payload(10.0))
        upstream.add(ENTRYPOINT, status_code=404)
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([TARGET], [ENTRYPOINT], ttl=100) is True
        assert upstream.requested_urls == [PROVIDERS_URL, HEALTH_URL, ENTRYPOINT]

    def test_uptime_not_fetched_without_ttl(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload())
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([TARGET], [], ttl=0) is True
        assert HEALTH_URL not in upstream.requested_urls

    def test_ttl_exceeded(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload())
        upstream.add(HEALTH_URL, json=health_payload(500.0))
        upstream.add(ENTRYPOINT)
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([TARGET], [ENTRYPOINT], ttl=100) is False
        assert ENTRYPOINT not in upstream.requested_urls

    def test_one_failing_target_fails_all(self, upstream: FakeUpstream) -> None:
        other = ProxyTarget(host="traefik-b:8080", min_services=1)
        upstream.add(PROVIDERS_URL, json=providers_payload())
        upstream.add("http://traefik-b:8080/api/providers", json=providers_payload(backends=0))
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([TARGET, other], [], ttl=0) is False

    def test_per_target_minimums(self, upstream: FakeUpstream) -> None:
        strict = ProxyTarget(host="traefik-b:8080", min_services=5)
        upstream.add(PROVIDERS_URL, json=providers_payload(backends=1, frontends=1))
        upstream.add("http://traefik-b:8080/api/providers", json=providers_payload(4, 4))
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([TARGET], [], ttl=0) is True
        assert prober.is_healthy([TARGET, strict], [], ttl=0) is False

    def test_short_circuits_on_provider_failure(self, upstream: FakeUpstream) -> None:
        other = ProxyTarget(host="traefik-b:8080")
        upstream.add_error(PROVIDERS_URL)
        upstream.add(ENTRYPOINT)
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([TARGET, other], [ENTRYPOINT], ttl=100) is False
        assert upstream.requested_urls == [PROVIDERS_URL]

    def test_entrypoint_503_fails(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload())
        upstream.add(ENTRYPOINT, status_code=503)
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([TARGET], [ENTRYPOINT], ttl=0) is False

    def test_no_targets_and_no_entrypoints(self, upstream: FakeUpstream) -> None:
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([], [], ttl=100) is True
        assert upstream.requested_urls == []

    def test_invalid_urls_are_unhealthy_not_errors(self, upstream: FakeUpstream) -> None:
        upstream.add(PROVIDERS_URL, json=providers_payload())
        prober = TraefikProber(client=upstream.client())

        assert prober.is_healthy([ProxyTarget(host="[::1")], [], ttl=0) is False
        assert prober.is_healthy([TARGET], ["http://[::1/"], ttl=0) is False


class TestDefaultClient:
    """Tests for the client TraefikProber builds itself."""

    def test_timeout_applied(self) -> None:
        prober = TraefikProber(timeout=3.0)
        try:
            assert prober.client.timeout.read == 3.0
            assert prober.client.follow_redirects is True
        finally:
            prober.close()

    def test_skips_tls_verification(self) -> None:
        with patch("traefik_healthcheck.http.httpx.Client") as client_cls:
            TraefikProber(timeout=3.0)

        client_cls.assert_called_once()
        assert client_cls.call_args.kwargs["verify"] is False
