import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from alerts import get_evaluator
from api.alerts import router as alerts_router
from db import get_store

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(config.APP_LOGGER_NAME)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_store()
    evaluator = get_evaluator()
    logger.info(
        "Alert engine ready (store=%s, workers=%d, provider timeout=%.1fs)",
        store.backend, evaluator.max_workers, evaluator.provider_timeout,
    )
    yield
    logger.info("Alert engine shutting down after %d sweep(s)", evaluator.stats()["sweeps"])


app = FastAPI(
    title="Market Alert Engine API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(alerts_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "Market Alert Engine API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    stats = get_evaluator().stats()

    return {
        "status": "healthy",
        "store": {
            "backend": get_store().backend,
        },
        "evaluator": {
            "sweeps": stats["sweeps"],
            "alerts_indexed": stats["alerts_indexed"],
            "events_emitted": stats["events_emitted"],
            "last_sweep_at": stats["last_sweep_at"],
            "uptime_seconds": stats["uptime_seconds"],
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=config.API_HOST, port=config.API_PORT, reload=True)
