import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from adapters.entry.http.stream_router import router as stream_router
from config.settings import settings
from workers.stream_supervisor import StreamSupervisor


def _setup_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


supervisor = StreamSupervisor()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _setup_logging()
    logging.getLogger(__name__).info("Starting %s (lifespan startup)...", settings.APP_NAME)

    await supervisor.start()
    app.state.db = supervisor.db
    app.state.stream = supervisor.stream

    try:
        yield
    finally:
        logging.getLogger(__name__).info("Shutting down %s (lifespan shutdown)...", settings.APP_NAME)
        await supervisor.stop()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.include_router(stream_router)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
