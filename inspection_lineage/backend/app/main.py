# backend/app/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .domain.errors import EngineError
from .logging_config import configure_logging

from .middleware.request_id import RequestIdMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.inspections import router as inspections_router
from .routers.subtasks import router as subtasks_router

API_PREFIX = "/api"

log = logging.getLogger("inspections.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


configure_logging()

app = FastAPI(title="Inspection Lineage Engine", version="0.1.0")

# added last = outermost: request id is set before the request line is logged
app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    log.log(
        level,
        "%s: %s",
        type(exc).__name__,
        exc.message,
        extra={"event": {"type": "engine_error", "path": request.url.path, "status_code": exc.status_code}},
    )
    body = exc.as_dict()
    if exc.status_code >= 500:
        # driver details stay in the log
        body["detail"] = "storage temporarily unavailable, retry the request"
    return JSONResponse(status_code=exc.status_code, content=body)


app.include_router(health_router, prefix=API_PREFIX)
app.include_router(inspections_router, prefix=API_PREFIX)
app.include_router(subtasks_router, prefix=API_PREFIX)
