"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from advisor.api.dashboard import router as dashboard_router
from advisor.api.feedback import router as feedback_router
from advisor.api.preferences import router as preferences_router
from advisor.config import HTTP_TIMEOUT, LOG_LEVEL
from advisor.models.database import async_session_factory, close_db, init_db
from advisor.services.dashboard import build_dashboard
from advisor.services.preferences import PreferenceStore
from advisor.tasks.scheduler import deferrer, start_scheduler, stop_scheduler

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    client = httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True)
    app.state.aggregator = build_dashboard(
        client, PreferenceStore(async_session_factory), deferrer=deferrer
    )
    start_scheduler(app.state.aggregator)
    yield
    stop_scheduler()
    await client.aclose()
    await close_db()


app = FastAPI(title="AI Crypto Advisor", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(dashboard_router)
app.include_router(preferences_router)
app.include_router(feedback_router)


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
