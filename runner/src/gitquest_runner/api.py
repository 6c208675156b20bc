from __future__ import annotations

"""Local HTTP API over the quest lifecycle commands."""

from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .errors import QuestRequestError
from .service import QuestService
from .state import STATE_SCHEMA_VERSION
from .telemetry import detect_version, sanitize_actor_id


NOT_FOUND_CODES = {"QUEST_NOT_FOUND", "QUEST_NOT_ACTIVE"}
CONFLICT_CODES = {"STATE_CONFLICT", "QUEST_NUMBER_IN_USE"}


class ScanRequest(BaseModel):
    """Payload for `/v1/scan`; `path` narrows the scan to a project subdirectory."""

    path: str | None = Field(default=None, max_length=1024)
    scanner: str = "all"
    actor_id: str | None = Field(default=None, max_length=200)


class QuestActionRequest(BaseModel):
    actor_id: str | None = Field(default=None, max_length=200)


def rejection_status(exc: QuestRequestError) -> int:
    if exc.code in NOT_FOUND_CODES:
        return 404
    if exc.code in CONFLICT_CODES:
        return 409
    return 400


def create_app(service: QuestService) -> FastAPI:
    """Create API routes backed by `QuestService` with actor/source attribution."""

    app = FastAPI(title="git-quest API", version=detect_version())

    @app.middleware("http")
    async def trace_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
        incoming = (request.headers.get("x-gitquest-trace-id") or "").strip()
        trace_id = sanitize_actor_id(incoming) if incoming else f"api:{uuid4()}"
        if not trace_id or trace_id == "unknown":
            trace_id = f"api:{uuid4()}"
        request.state.trace_id = trace_id
        try:
            response = await call_next(request)
        except Exception as exc:  # noqa: BLE001
            service.telemetry.log_event(
                "risk.flagged",
                actor="system",
                actor_id="api:unknown",
                source="api",
                trace_id=trace_id,
                data={
                    "reason": "api_internal_error",
                    "endpoint": request.url.path,
                    "error_type": exc.__class__.__name__,
                },
            )
            response = JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "Internal server error",
                    "trace_id": trace_id,
                },
            )
        response.headers["X-GitQuest-Trace-Id"] = trace_id
        return response

    def request_context(request: Request, body_actor_id: str | None = None) -> dict[str, Any]:
        """Resolve normalized caller attribution with header precedence."""

        actor = request.headers.get("x-gitquest-actor", "human").strip().lower()
        if actor not in {"human", "agent", "system"}:
            actor = "human"
        header_actor_id = (request.headers.get("x-gitquest-actor-id") or "").strip()
        actor_id = header_actor_id or (body_actor_id or "").strip() or "api:unknown"
        trace_id = getattr(request.state, "trace_id", None) or f"api:{uuid4()}"
        return {"actor": actor, "source": "api", "actor_id": actor_id, "trace_id": trace_id}

    def rejection(exc: QuestRequestError, request: Request) -> JSONResponse:
        payload = exc.to_dict()
        payload["trace_id"] = getattr(request.state, "trace_id", None)
        return JSONResponse(status_code=rejection_status(exc), content=payload)

    @app.get("/v1/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": detect_version(),
            "root": str(service.root),
            "schema_versions": {"state": STATE_SCHEMA_VERSION},
        }

    @app.post("/v1/scan")
    def scan(request: ScanRequest, http_request: Request) -> Any:
        try:
            return service.scan(
                request.path,
                request.scanner,
                **request_context(http_request, request.actor_id),
            )
        except QuestRequestError as exc:
            return rejection(exc, http_request)

    @app.post("/v1/quests/{quest_number}/accept")
    def accept(quest_number: int, http_request: Request, request: QuestActionRequest | None = None) -> Any:
        try:
            return service.accept(
                quest_number,
                **request_context(http_request, request.actor_id if request else None),
            )
        except QuestRequestError as exc:
            return rejection(exc, http_request)

    @app.post("/v1/quests/{quest_number}/verify")
    def verify(quest_number: int, http_request: Request, request: QuestActionRequest | None = None) -> Any:
        try:
            return service.verify(
                quest_number,
                **request_context(http_request, request.actor_id if request else None),
            )
        except QuestRequestError as exc:
            return rejection(exc, http_request)

    @app.get("/v1/stats")
    def stats(http_request: Request) -> Any:
        return service.stats(**request_context(http_request))

    @app.get("/v1/log")
    def quest_log(http_request: Request, status: str = Query(default="all")) -> Any:
        try:
            return service.log(status, **request_context(http_request))
        except QuestRequestError as exc:
            return rejection(exc, http_request)

    return app
