import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.database import SessionLocal
from .core.errors import DOMAIN_ERRORS, status_code_for
from .routers import assets, health, internal, media, products
from .services.sweeper import sweep_stale_pending_assets

settings = get_settings()
logger = logging.getLogger("assetforge")
logger.setLevel(settings.log_level.upper())

app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(products.router, prefix=settings.api_prefix)
app.include_router(assets.router, prefix=settings.api_prefix)
app.include_router(media.router, prefix=settings.api_prefix)
app.include_router(internal.router, prefix=settings.api_prefix)


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(exc), content={"detail": str(exc)})


for _error_type in DOMAIN_ERRORS:
    app.add_exception_handler(_error_type, _domain_error_handler)


def _run_sweep() -> int:
    db = SessionLocal()
    try:
        return sweep_stale_pending_assets(db, settings=settings)
    finally:
        db.close()


async def _sweep_forever(interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(_run_sweep)
        except Exception:
            logger.exception("Pending asset sweep failed")


@app.on_event("startup")
async def _start_sweeper() -> None:
    if settings.sweeper_interval_seconds > 0:
        app.state.sweeper = asyncio.create_task(_sweep_forever(settings.sweeper_interval_seconds))


@app.on_event("shutdown")
async def _stop_sweeper() -> None:
    task = getattr(app.state, "sweeper", None)
    if task is not None:
        task.cancel()
