"""Health probes and their aggregation.

Modules contribute ``HealthProbe`` instances at registration time. The web
host exposes three views over them:

- liveness runs no probes at all; the process answering is the signal
- readiness runs every probe tagged ``ready``
- the full report runs every registered probe

A probe check is an async callable. It may return a mapping with optional
``message`` and ``metadata`` entries; raising or timing out marks the probe
unhealthy.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from todo.core.enums import HealthStatus
from todo.core.errors import ConfigurationError
from todo.core.logging import get_logger

logger = get_logger(__name__)

READY_TAG = "ready"
DB_TAG = "db"

ProbeCheck = Callable[[], Awaitable[dict[str, Any] | None]]


@dataclass(frozen=True)
class HealthProbe:
    """Named dependency check with tags."""

    name: str
    check: ProbeCheck
    tags: frozenset[str] = frozenset()
    timeout_seconds: float = 5.0

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Health probe name is required")
        object.__setattr__(self, "tags", frozenset(self.tags))

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass
class HealthCheckResult:
    """Result of a health check operation."""

    name: str
    status: HealthStatus
    response_time: float
    message: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "response_time": round(self.response_time, 4),
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class HealthReport:
    """Aggregate of probe results; unhealthy if any probe is."""

    results: list[HealthCheckResult]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def status(self) -> HealthStatus:
        if any(r.status == HealthStatus.UNHEALTHY for r in self.results):
            return HealthStatus.UNHEALTHY
        if any(r.status == HealthStatus.DEGRADED for r in self.results):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    @property
    def is_healthy(self) -> bool:
        return self.status != HealthStatus.UNHEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "checks": {r.name: r.to_dict() for r in self.results},
        }


class HealthRegistry:
    """Holds the probes contributed by module registrars."""

    def __init__(self):
        self._probes: dict[str, HealthProbe] = {}

    def add(self, probe: HealthProbe) -> None:
        """
        Register a probe.

        Raises:
            ConfigurationError: If a probe with the same name exists
        """
        if probe.name in self._probes:
            raise ConfigurationError(f"Health probe '{probe.name}' is already registered")
        self._probes[probe.name] = probe
        logger.debug("Health probe registered", name=probe.name, tags=sorted(probe.tags))

    def remove(self, name: str) -> None:
        self._probes.pop(name, None)

    @property
    def probes(self) -> list[HealthProbe]:
        return list(self._probes.values())

    def names(self) -> list[str]:
        return list(self._probes)

    def tagged(self, tag: str) -> list[HealthProbe]:
        return [p for p in self._probes.values() if p.has_tag(tag)]

    async def liveness(self) -> HealthReport:
        return HealthReport(results=[])

    async def readiness(self) -> HealthReport:
        return await self.run(self.tagged(READY_TAG))

    async def check_all(self) -> HealthReport:
        return await self.run(self.probes)

    async def run(self, probes: Iterable[HealthProbe]) -> HealthReport:
        results = await asyncio.gather(*(run_probe(p) for p in probes))
        return HealthReport(results=list(results))


async def run_probe(probe: HealthProbe) -> HealthCheckResult:
    """Run a single probe with its timeout; never raises for probe failures."""
    start_time = time.perf_counter()
    try:
        outcome = await asyncio.wait_for(probe.check(), timeout=probe.timeout_seconds)
    except TimeoutError:
        result = HealthCheckResult(
            name=probe.name,
            status=HealthStatus.UNHEALTHY,
            response_time=time.perf_counter() - start_time,
            message="Health check timed out",
            timestamp=datetime.now(UTC),
        )
    except Exception as e:
        result = HealthCheckResult(
            name=probe.name,
            status=HealthStatus.UNHEALTHY,
            response_time=time.perf_counter() - start_time,
            message=f"Health check failed: {e!s}",
            timestamp=datetime.now(UTC),
            metadata={"error_type": type(e).__name__},
        )
    else:
        outcome = outcome or {}
        result = HealthCheckResult(
            name=probe.name,
            status=HealthStatus.HEALTHY,
            response_time=time.perf_counter() - start_time,
            message=outcome.get("message", "Health check passed"),
            timestamp=datetime.now(UTC),
            metadata=outcome.get("metadata", {}),
        )

    logger.debug(
        "Health check completed",
        name=probe.name,
        status=result.status.value,
        response_time=result.response_time,
    )
    return result


__all__ = [
    "DB_TAG",
    "READY_TAG",
    "HealthCheckResult",
    "HealthProbe",
    "HealthRegistry",
    "HealthReport",
    "run_probe",
]
