"""
HTTP surface: inbound messages, host lifecycle events, and record export.

``create_app`` wires a ``ScriptInspector`` into a FastAPI app.  The
default inspector persists to the JSON store configured in settings.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator
from typing import Any, Literal

import fastapi
from fastapi.middleware import cors
from starlette import responses

from jsinspector import config, inspector as inspector_mod
from jsinspector.models import events, records
from jsinspector.reports import export
from jsinspector.storage import kv
from jsinspector.utils import logger

log = logger.create_logger("Server")


def get_inspector(request: fastapi.Request) -> inspector_mod.ScriptInspector:
    return request.app.state.inspector


def create_app(inspector: inspector_mod.ScriptInspector | None = None) -> fastapi.FastAPI:
    """Build the API around *inspector* (or a file-backed default)."""

    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI) -> AsyncGenerator[None]:
        current = app.state.inspector
        await current.load_state()
        log.section("JS Block Inspector Started")
        yield
        await current.buckets.flush()
        log.info("Pending writes flushed")

    app = fastapi.FastAPI(title="JS Block Inspector", lifespan=lifespan)
    if inspector is None:
        settings = config.get_settings()
        inspector = inspector_mod.ScriptInspector(kv.JsonFileStore(settings.store_path), settings)
    app.state.inspector = inspector

    app.add_middleware(
        cors.CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # Messages
    # ========================================================================

    @app.post("/api/messages")
    async def post_message(
        message: dict[str, Any],
        sender_tab_id: int | None = fastapi.Query(None, alias="senderTabId"),
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        """Handle one ``csp-violation``/``get-state``/``set-ignore-domain`` message."""
        return await current.handle_message(message, sender_tab_id)

    # ========================================================================
    # Host lifecycle events
    # ========================================================================

    @app.post("/api/events/navigation-committed")
    async def navigation_committed(
        event: events.NavigationCommitted,
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        return {"bucketKey": current.on_navigation_committed(event)}

    @app.post("/api/events/before-request")
    async def before_request(
        event: events.BeforeRequest,
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        return {"tracked": current.on_before_request(event)}

    @app.post("/api/events/headers-received")
    async def headers_received(
        event: events.HeadersReceived,
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        current.on_headers_received(event)
        return {"ok": True}

    @app.post("/api/events/completed")
    async def completed(
        event: events.RequestCompleted,
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        record = await current.on_completed(event)
        return {"record": record.model_dump(by_alias=True, mode="json") if record else None}

    @app.post("/api/events/error-occurred")
    async def error_occurred(
        event: events.RequestErrored,
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        record = await current.on_error_occurred(event)
        return {"record": record.model_dump(by_alias=True, mode="json") if record else None}

    # ========================================================================
    # Records & export
    # ========================================================================

    @app.get("/api/buckets")
    async def list_buckets(
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        return {
            key: bucket.model_dump(by_alias=True, mode="json")
            for key, bucket in current.buckets.buckets.items()
        }

    def _latest_records(
        current: inspector_mod.ScriptInspector, tab_id: int, origin: str | None
    ) -> tuple[str, list[records.Record]]:
        found = export.latest_bucket_for(current.buckets.buckets, tab_id, origin)
        if found is None:
            raise fastapi.HTTPException(status_code=404, detail="No records for this tab yet.")
        _, bucket = found
        return bucket.origin, list(bucket.records)

    @app.get("/api/tabs/{tab_id}/records")
    async def tab_records(
        tab_id: int,
        q: str = "",
        origin: str | None = None,
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> dict[str, Any]:
        bucket_origin, items = _latest_records(current, tab_id, origin)
        matched = export.filter_records(reversed(items), q)
        return {
            "origin": bucket_origin,
            "total": len(items),
            "records": [r.model_dump(by_alias=True, mode="json") for r in matched],
        }

    @app.get("/api/tabs/{tab_id}/export")
    async def tab_export(
        tab_id: int,
        format: Literal["csv", "json"] = "json",
        origin: str | None = None,
        current: inspector_mod.ScriptInspector = fastapi.Depends(get_inspector),
    ) -> responses.Response:
        bucket_origin, items = _latest_records(current, tab_id, origin)
        if format == "csv":
            return responses.PlainTextResponse(export.to_csv(items), media_type="text/csv")
        return responses.Response(
            export.to_json(items, bucket_origin, tab_id), media_type="application/json"
        )

    return app
