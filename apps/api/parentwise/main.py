from __future__ import annotations

import logging
from typing import Any, Dict, List

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException

from .config import ConfigError, get_config
from .db import initialize_db
from .errors import ParentWiseError
from .routes import activities as activity_routes
from .routes import ai as ai_routes
from .routes import audit as audit_routes
from .routes import auth as auth_routes
from .routes import children as child_routes
from .routes import content as content_routes
from .routes import families as family_routes
from .routes import milestones as milestone_routes
from .routes import notifications as notification_routes
from .routes import onboarding as onboarding_routes
from .routes import plans as plan_routes
from .routes import users as user_routes

logger = logging.getLogger(__name__)

try:
    CONFIG = get_config()
except ConfigError as exc:
    logging.basicConfig(level=logging.INFO)
    for problem in exc.problems:
        logger.critical("invalid configuration: %s", problem)
    raise SystemExit(1) from exc

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logging.getLogger("parentwise").setLevel(CONFIG.log_level.upper())

initialize_db()

app = FastAPI(title="ParentWise API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(message: str, details: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    return body


def _field_path(location: tuple) -> str:
    if not location:
        return "body"
    parts = [str(part) for part in location[1:]]
    if location[0] == "body":
        # Fields validated from their defaults report the python name, not the alias.
        parts = [to_camel(part) if "_" in part else part for part in parts]
    return ".".join(parts) or str(location[0])


def _validation_details(exc: RequestValidationError) -> List[Dict[str, str]]:
    details = []
    for error in exc.errors():
        details.append({"field": _field_path(tuple(error.get("loc", ()))), "message": error.get("msg", "")})
    return details


@app.exception_handler(ParentWiseError)
async def parentwise_error_handler(request: Request, exc: ParentWiseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(
            "request failed",
            extra={"path": request.url.path, "status": exc.status_code, "error_type": type(exc).__name__},
        )
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.details))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=_error_body("Validation failed", _validation_details(exc)))


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content=_error_body("Internal server error"))


app.include_router(auth_routes.router)
app.include_router(onboarding_routes.router)
app.include_router(ai_routes.router)
app.include_router(user_routes.router)
app.include_router(family_routes.router)
app.include_router(child_routes.router)
app.include_router(milestone_routes.router)
app.include_router(activity_routes.router)
app.include_router(plan_routes.router)
app.include_router(notification_routes.router)
app.include_router(content_routes.router)
app.include_router(audit_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


def run() -> None:
    uvicorn.run(app, host=CONFIG.host, port=CONFIG.port, log_level=CONFIG.log_level.lower())
