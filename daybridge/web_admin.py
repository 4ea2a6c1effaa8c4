from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from daybridge.config_manager import ConfigManager
from daybridge.models import SyncResult
from daybridge.state_store import StateStore
from daybridge.sync_engine import SyncEngine


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class DocumentSyncRequest(BaseModel):
    document: str = Field(min_length=1, max_length=512)


class AppContext:
    def __init__(self, config_path: str, state_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        self.state_store = StateStore(state_path)
        self.sync_engine = SyncEngine(self.config_manager, self.state_store)


def _sync_response(result: SyncResult) -> dict[str, Any]:
    if result.status == "invalid":
        raise HTTPException(status_code=400, detail=result.message)
    if result.status == "error":
        raise HTTPException(status_code=502, detail=result.message)
    return result.to_dict()


def create_app() -> FastAPI:
    config_path = os.getenv("DAYBRIDGE_CONFIG_PATH", "config.yaml")
    state_path = os.getenv("DAYBRIDGE_STATE_PATH", "data/state.db")
    context = AppContext(config_path=config_path, state_path=state_path)

    app = FastAPI(title="Daybridge", version="0.1.0")
    app.state.context = context

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        app.state.context.config_manager.update(request.payload)
        app.state.context.sync_engine.clear_cache()
        return {
            "message": "config updated",
            "config": app.state.context.config_manager.masked(),
        }

    @app.post("/api/sync/pull")
    def pull(request: DocumentSyncRequest) -> dict[str, Any]:
        return _sync_response(app.state.context.sync_engine.pull(request.document))

    @app.post("/api/sync/push")
    def push(request: DocumentSyncRequest) -> dict[str, Any]:
        return _sync_response(app.state.context.sync_engine.push(request.document))

    @app.post("/api/cache/clear")
    def clear_cache() -> dict[str, str]:
        app.state.context.sync_engine.clear_cache()
        return {"message": "calendar cache cleared"}

    @app.get("/api/sync/status")
    def sync_status(limit: int = 20) -> dict[str, Any]:
        return {"runs": app.state.context.state_store.recent_sync_runs(limit=limit)}

    @app.get("/api/audit/events")
    def audit_events(limit: int = 100, run_id: int | None = None) -> dict[str, Any]:
        return {"events": app.state.context.state_store.recent_audit_events(limit=limit, run_id=run_id)}

    return app
