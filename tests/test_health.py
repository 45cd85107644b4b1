"""Tests for maildav.health."""

from __future__ import annotations

import httpx
import pytest

from maildav.config import PollerConfig
from maildav.health import create_health_app
from maildav.models import PollerStatus
from maildav.poller import Poller
from maildav.pool import ConnectionPool

from tests.conftest import FakeSession


@pytest.fixture
def poller(poller_config: PollerConfig) -> Poller:
    return Poller(poller_config, ConnectionPool(session_factory=lambda _config: FakeSession()))


@pytest.fixture
def health_app(poller: Poller):
    return create_health_app(poller)


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health_running(self, health_app, poller: Poller):
        poller.status = PollerStatus.RUNNING
        async with _client(health_app) as client:
            resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["source_name"] == "invoices"
        assert data["status"] == "running"
        assert "uptime_seconds" in data

    @pytest.mark.asyncio
    async def test_health_stopped_returns_503(self, health_app, poller: Poller):
        poller.status = PollerStatus.STOPPED
        async with _client(health_app) as client:
            resp = await client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "stopped"

    @pytest.mark.asyncio
    async def test_health_includes_poll_details(self, health_app, poller: Poller):
        poller.status = PollerStatus.RUNNING
        await poller.poll()
        async with _client(health_app) as client:
            resp = await client.get("/health")
        details = resp.json()["details"]
        assert details["cycles"] == 1
        assert details["directories"] == ["INBOX"]
        assert details["last_poll_time"] is not None

    @pytest.mark.asyncio
    async def test_ready_after_first_cycle(self, health_app, poller: Poller):
        poller.status = PollerStatus.RUNNING
        async with _client(health_app) as client:
            before = await client.get("/ready")
            await poller.poll()
            after = await client.get("/ready")

        assert before.status_code == 503
        assert before.json() == {"ready": False, "cycles": 0, "last_error": None}
        assert after.status_code == 200
        assert after.json() == {"ready": True, "cycles": 1, "last_error": None}

    @pytest.mark.asyncio
    async def test_ready_reports_last_error(self, poller_config: PollerConfig):
        config = poller_config.model_copy(update={"source_directories": ["Missing"]})
        poller = Poller(config, ConnectionPool(session_factory=lambda _config: FakeSession()))
        poller.status = PollerStatus.RUNNING
        await poller.poll()
        async with _client(create_health_app(poller)) as client:
            resp = await client.get("/ready")
        assert resp.status_code == 200
        assert "Missing" in resp.json()["last_error"]

    @pytest.mark.asyncio
    async def test_not_ready_once_stopped(self, health_app, poller: Poller):
        await poller.poll()
        poller.status = PollerStatus.STOPPED
        async with _client(health_app) as client:
            resp = await client.get("/ready")
        assert resp.status_code == 503
        assert resp.json()["ready"] is False
