"""FastAPI application factory for servstat."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from servstat import __version__
from servstat.api.routes import client, status
from servstat.config.models import ServStatConfig
from servstat.registry.registry import ServiceRegistry


async def _not_found(request: Request, exc: StarletteHTTPException) -> Response:
    # Unknown paths get a bare text 404; explicit API 404s keep their detail.
    if exc.status_code == 404 and exc.detail == "Not Found":
        return PlainTextResponse("Not Found", status_code=404)
    return await http_exception_handler(request, exc)


def create_app(config: ServStatConfig | None = None) -> FastAPI:
    config = config or ServStatConfig()
    app = FastAPI(title="servstat", version=__version__, description="Upstream service status")
    app.add_exception_handler(StarletteHTTPException, _not_found)  # type: ignore[arg-type]

    app.state.config = config
    app.state.registry = ServiceRegistry(config)

    @app.get("/health", tags=["meta"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(status.router)
    app.include_router(client.router)

    return app
