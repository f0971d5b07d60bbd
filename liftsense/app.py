"""Runtime wiring: config -> coordinator -> HTTP query surface.

Boundary note for maintainers:
- Keep this module focused on orchestration, not windowing details.
- API schemas belong in ``api_models.py``; routes in ``api.py``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from .api import create_router
from .config import AppConfig
from .coordinator import CoordinatorObserver, MultiSourceCoordinator
from .sample_store import InMemorySampleStore
from .sessions import Device, DeviceEventObserver, SessionEventObserver

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RuntimeState:
    config: AppConfig
    coordinator: MultiSourceCoordinator


def build_coordinator(
    config: AppConfig,
    devices: Iterable[Device],
    *,
    observer: CoordinatorObserver,
    device_observer: DeviceEventObserver,
    session_observer: SessionEventObserver,
    clock: Callable[[], float] = time.time,
    loop: asyncio.AbstractEventLoop | None = None,
) -> MultiSourceCoordinator:
    window = config.window
    return MultiSourceCoordinator(
        devices,
        observer=observer,
        device_observer=device_observer,
        session_observer=session_observer,
        location_resolver=config.locations.resolver(),
        window_size_s=window.window_size_s,
        max_gap_s=window.max_gap_s,
        gap_value=window.gap_value,
        store=InMemorySampleStore(),
        clock=clock,
        loop=loop,
    )


def create_app(runtime: RuntimeState) -> FastAPI:
    coordinator = runtime.coordinator

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        coordinator.start()
        LOGGER.info("Coordinator %s started", coordinator.device_id)
        try:
            yield
        finally:
            coordinator.stop()
            LOGGER.info("Coordinator %s stopped", coordinator.device_id)

    app = FastAPI(title="LiftSense", lifespan=lifespan)
    app.state.runtime = runtime
    app.include_router(create_router(coordinator))
    return app
