"""
Tests for health probes and reports.
"""

import asyncio

import pytest

from todo.core.enums import HealthStatus
from todo.core.errors import ConfigurationError
from todo.core.health import DB_TAG, READY_TAG, HealthProbe, HealthRegistry, run_probe


async def healthy():
    return {"message": "ok", "metadata": {"rows": 3}}


async def failing():
    raise ConnectionError("database unreachable")


async def hanging():
    await asyncio.sleep(10)


@pytest.mark.unit
class TestRunProbe:
    """Test single probe execution."""

    async def test_healthy_probe(self):
        result = await run_probe(HealthProbe("tasks-db", healthy))

        assert result.status == HealthStatus.HEALTHY
        assert result.message == "ok"
        assert result.metadata == {"rows": 3}

    async def test_probe_returning_nothing_is_healthy(self):
        async def silent():
            return None

        result = await run_probe(HealthProbe("silent", silent))

        assert result.status == HealthStatus.HEALTHY
        assert result.message == "Health check passed"

    async def test_raising_probe_is_unhealthy(self):
        result = await run_probe(HealthProbe("tasks-db", failing))

        assert result.status == HealthStatus.UNHEALTHY
        assert "database unreachable" in result.message
        assert result.metadata["error_type"] == "ConnectionError"

    async def test_slow_probe_times_out(self):
        result = await run_probe(HealthProbe("tasks-db", hanging, timeout_seconds=0.01))

        assert result.status == HealthStatus.UNHEALTHY
        assert result.message == "Health check timed out"


@pytest.mark.unit
class TestHealthRegistry:
    """Test probe aggregation."""

    @pytest.fixture
    def registry(self):
        registry = HealthRegistry()
        registry.add(HealthProbe("tasks-db", healthy, tags={READY_TAG, DB_TAG}))
        registry.add(HealthProbe("audit-log", failing))
        return registry

    def test_duplicate_probe_name(self, registry):
        with pytest.raises(ConfigurationError):
            registry.add(HealthProbe("tasks-db", healthy))

    def test_probe_requires_name(self):
        with pytest.raises(ConfigurationError):
            HealthProbe("", healthy)

    def test_tagged(self, registry):
        assert [p.name for p in registry.tagged(READY_TAG)] == ["tasks-db"]
        assert [p.name for p in registry.tagged(DB_TAG)] == ["tasks-db"]

    async def test_readiness_runs_only_ready_probes(self, registry):
        report = await registry.readiness()

        assert report.is_healthy
        assert list(report.to_dict()["checks"]) == ["tasks-db"]

    async def test_check_all_is_unhealthy_when_any_probe_fails(self, registry):
        report = await registry.check_all()

        assert report.status == HealthStatus.UNHEALTHY
        assert not report.is_healthy
        assert report.to_dict()["checks"]["audit-log"]["status"] == "unhealthy"

    async def test_liveness_runs_no_probes(self, registry):
        report = await registry.liveness()

        assert report.is_healthy
        assert report.to_dict()["checks"] == {}

    async def test_remove(self, registry):
        registry.remove("audit-log")
        registry.remove("never-added")

        assert registry.names() == ["tasks-db"]
        assert (await registry.check_all()).is_healthy
