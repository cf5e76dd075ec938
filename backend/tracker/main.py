import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tracker.api.v1.api import api_router
from tracker.core.config import settings
from tracker.db.session import AsyncSessionLocal, run_migrations
from tracker.services.notifications import build_dispatcher

app = FastAPI(
    title=settings.PROJECT_NAME,
    docs_url=f"{settings.API_V1_STR}/docs",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update with frontend URL(s) in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.on_event("startup")
async def on_startup() -> None:
    logging.getLogger("tracker").setLevel(settings.LOG_LEVEL)
    await run_migrations()
    # Transports are built once; a half-configured FCM setup fails here, not at first send
    app.state.dispatcher = build_dispatcher(settings, AsyncSessionLocal)
