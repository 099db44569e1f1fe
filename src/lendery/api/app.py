# ABOUTME: FastAPI application factory for the lendery service.
# ABOUTME: Wires the runtime, the error envelope, and the resource routers.

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lendery import __version__
from lendery.api.routers import ai, books, borrow_requests, loans, search
from lendery.config import Settings, load_settings
from lendery.core.runtime import Runtime
from lendery.errors import LenderyError

logger = logging.getLogger(__name__)


async def _handle_lendery_error(request: Request, exc: LenderyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"message": exc.message, "details": exc.details}},
    )


def create_app(settings: Settings | None = None, *, runtime: Runtime | None = None) -> FastAPI:
    """Build the API.

    Args:
        settings: Configuration; resolved with load_settings() when omitted.
        runtime: A prebuilt runtime (tests inject one with fake providers).
    """
    if runtime is None:
        runtime = Runtime(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        runtime.close()

    app = FastAPI(title="lendery API", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime
    app.add_exception_handler(LenderyError, _handle_lendery_error)  # type: ignore[arg-type]

    app.include_router(books.router)
    app.include_router(search.router)
    app.include_router(loans.router)
    app.include_router(borrow_requests.router)
    app.include_router(ai.router)

    @app.get("/health", include_in_schema=False)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
