from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, HTTPException

from staked_court.config import AppSettings, get_settings
from staked_court.engine import Engine
from staked_court.errors import UnknownEntityError
from staked_court.observability.logging import configure_logging, get_logger
from staked_court.runtime.keeper import Keeper, default_keeper


def build_api(engine: Engine, keeper: Keeper | None = None) -> FastAPI:
    """Serve ``engine`` state; when a keeper is given it runs for the app's lifetime.

    The keeper must drive the same engine the API reads.
    """
    if keeper is not None and keeper.engine is not engine:
        raise ValueError("the keeper must drive the engine served by the API")
    settings = engine.settings

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        task = asyncio.create_task(keeper.run_forever()) if keeper is not None else None
        app.state.keeper_task = task
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(title=f"{settings.court_name}-api", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.keeper = keeper
    app.state.keeper_task = None

    def keeper_status() -> str:
        task = app.state.keeper_task
        if keeper is None:
            return "disabled"
        if task is None or task.done():
            return "stopped"
        return "running"

    @app.get("/livez")
    async def livez() -> dict[str, str]:
        return {"status": "ok", "court_name": settings.court_name}

    @app.get("/readyz")
    async def readyz() -> dict[str, Any]:
        return {
            "status": "ready" if engine.registry.courts else "starting",
            "keeper": keeper_status(),
            "courts": len(engine.registry.courts),
            "disputes": len(engine.core.disputes),
            "open_disputes": len(engine.core.open_dispute_ids()),
            "dispute_kits": sorted(engine.core.dispute_kits),
        }

    @app.get("/courts/{court_id}")
    async def court(court_id: int) -> dict[str, Any]:
        try:
            record = engine.registry.court(court_id)
        except UnknownEntityError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        return {**record.as_dict(), "total_stake": engine.registry.sortition_tree(court_id).total}

    @app.get("/disputes/{dispute_id}")
    async def dispute(dispute_id: int) -> dict[str, Any]:
        core = engine.core
        try:
            record = core.get_dispute(dispute_id)
        except UnknownEntityError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        kit = core.dispute_kits[record.dispute_kit_id]
        payload = {
            **record.as_dict(),
            "status": core.dispute_status(dispute_id).value,
            "current_ruling": core.current_ruling(dispute_id),
        }
        if kit is engine.classic_kit:
            payload["votes"] = [
                engine.classic_kit.get_round_info(dispute_id, index) for index in range(len(record.rounds))
            ]
        return payload

    @app.get("/jurors/{account}")
    async def juror(account: str) -> dict[str, Any]:
        return engine.registry.juror(account).as_dict()

    return app


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the court service: one engine, read by the API and driven by the keeper."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.court_name)
    keeper = default_keeper(settings)
    get_logger("staked_court.api").info(
        "service_ready", court_name=settings.court_name, keeper_rng=settings.keeper_rng
    )
    return build_api(keeper.engine, keeper)
