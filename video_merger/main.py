import logging
from time import perf_counter

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from video_merger.api import merge
from video_merger.api.errors import error_response
from video_merger.config import get_settings
from video_merger.exceptions import InternalError, MergerError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def record_start_time(request: Request, call_next):
    request.state.started_at = perf_counter()
    return await call_next(request)


@app.exception_handler(MergerError)
async def merger_exception_handler(request: Request, exc: MergerError) -> JSONResponse:
    if exc.status_code >= 500:
        # Operators get the full diagnostic, the client only the public message
        logger.error(f"Merge error [{exc.code}]: {exc.message}")
    else:
        logger.info(f"Merge rejected [{exc.code}]: {exc.message}")
    return error_response(exc, getattr(request.state, "started_at", None))


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return error_response(InternalError(str(exc)), getattr(request.state, "started_at", None))


# Routers
app.include_router(merge.router, prefix="/api", tags=["merge"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "version": settings.app_version}


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
