from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import Base, engine, SessionLocal
from .gym_settings import seed_default_settings
from .observability import RequestTimingLoggingMiddleware, add_exception_handlers
from .routers import access, health, maintenance, members, memberships, payments, plans, qr, settings as gym_settings_router

# Ensure schema is present when the module is imported (helps tests using TestClient without lifespan)
Base.metadata.create_all(bind=engine)

ROUTERS = (health, members, plans, memberships, payments, gym_settings_router, access, qr, maintenance)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        inserted = seed_default_settings(db)
        db.commit()
    finally:
        db.close()
    if inserted:
        logging.getLogger("config").info("stored %s default gym settings", inserted)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")

    application = FastAPI(title="Gym Access API", version="0.1.0", lifespan=lifespan)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestTimingLoggingMiddleware)

    add_exception_handlers(application)

    for module in ROUTERS:
        application.include_router(module.router)
    return application


app = create_app()
