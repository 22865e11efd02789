import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from command_center.api.routers import chat as chat_router
from command_center.api.routers import gateway as gateway_router
from command_center.api.routers import threads as threads_router
from command_center.core.config import CORS_ORIGINS, LOG_LEVEL
from command_center.core.database import async_engine
from command_center.models import Base
from command_center.services.gateway import create_http_client

LOG = logging.getLogger(__name__)
logging.basicConfig(level=LOG_LEVEL)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables when running locally, open the shared gateway client. Shutdown: close both."""
    if os.getenv("DB_CREATE_TABLES", "false").lower() == "true":
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    app.state.gateway_http = create_http_client()
    yield
    await app.state.gateway_http.aclose()
    await async_engine.dispose()


app = FastAPI(title="Command Center API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router.router, prefix="/api")
app.include_router(threads_router.router, prefix="/api")
app.include_router(gateway_router.router, prefix="/api")


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    """The relay answers malformed bodies with its own {error} shape; other routes keep FastAPI's 422."""
    if request.url.path == "/api/chat":
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    LOG.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
