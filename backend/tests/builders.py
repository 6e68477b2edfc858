"""Builders shared by the test suite."""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from todo.core.config import ModuleConfiguration, Settings
from todo.core.contracts import CapabilityRegistry
from todo.core.dispatch import InProcessStrategy
from todo.core.health import HealthRegistry
from todo.core.modules import RegistrationContext
from todo.modules.tasks import TasksModuleRegistrar


def make_settings(modules: dict | None = None, **environ: str) -> Settings:
    """Settings from explicit values only; no .env file, no process environment."""
    return Settings(env_file=None, environ=environ, modules=modules or {})


def make_http_transport(
    responder: Callable[[httpx.Request], httpx.Response],
) -> tuple[httpx.MockTransport, list[httpx.Request]]:
    """Mock transport that records every request it serves."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responder(request)

    return httpx.MockTransport(handler), seen


@asynccontextmanager
async def running_app(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    """Run the app's lifespan and yield a client bound to it."""
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


def build_in_process_tasks() -> InProcessStrategy:
    """Local Tasks strategy outside any application context."""
    registrar = TasksModuleRegistrar()
    context = RegistrationContext(registry=CapabilityRegistry(), health=HealthRegistry())
    return registrar.create_in_process_strategy(ModuleConfiguration(name="tasks"), context)
