import asyncio
import logging
from typing import Optional

from fastapi import FastAPI

from kline.api.routes import router as api_router
from kline.config import Settings, get_settings
from kline.jobs.poller import QuotePoller
from kline.jobs.retention import retention_loop
from kline.providers.base import QuoteProvider
from kline.providers.loader import get_provider
from kline.storage.base import QuoteStore
from kline.storage.loader import get_store

log = logging.getLogger("kline_app")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[QuoteStore] = None,
    provider: Optional[QuoteProvider] = None,
    start_jobs: bool = True,
) -> FastAPI:
    """
    Build the API app.

    The store/provider/poller are created here and hung off app.state, so
    routes and background jobs share one explicitly-owned store.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="KLine Quote API", version="0.1.0")
    app.include_router(api_router)

    app.state.settings = settings
    app.state.store = store or get_store(settings)
    app.state.provider = provider
    app.state.tasks = []

    @app.on_event("startup")
    async def _startup():
        app.state.store.open()

        if not start_jobs:
            return

        if app.state.provider is None:
            app.state.provider = get_provider(settings)

        poller = QuotePoller(
            provider=app.state.provider,
            store=app.state.store,
            symbols=settings.symbols,
            cycle_timeout_seconds=settings.poll_timeout_seconds,
        )
        app.state.poller = poller

        # Poll loop (one fan-out per tick, skipped while a cycle is in flight)
        app.state.tasks.append(
            asyncio.create_task(poller.run_forever(settings.poll_interval_ms / 1000.0))
        )
        # Retention sweep (hourly by default)
        app.state.tasks.append(
            asyncio.create_task(
                retention_loop(
                    app.state.store,
                    settings.retention_ms,
                    settings.clean_interval_seconds,
                )
            )
        )
        log.info(
            "KLine server started symbols=%s storage=%s retention_days=%s",
            settings.symbols,
            settings.storage_backend,
            settings.retention_days,
        )

    @app.on_event("shutdown")
    async def _shutdown():
        for task in app.state.tasks:
            task.cancel()
        await asyncio.gather(*app.state.tasks, return_exceptions=True)
        app.state.tasks = []

        if app.state.provider is not None:
            await app.state.provider.aclose()

        # flushes any debounced write before exit
        app.state.store.close()

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "app_env": settings.app_env,
            "storage": settings.storage_backend,
            "symbols": settings.symbols,
        }

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
