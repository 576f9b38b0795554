import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db.connection import db_pool
from app.db.storage import init_storage
from app.api.routes import health, quotes, leads, rate_sheets

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: pick the record store
    db_pool.initialize()
    init_storage(settings.SQLSERVER_CONN_STRING)
    yield
    # Shutdown: close DB pool
    db_pool.close()


app = FastAPI(title="Mortgage Rate Engine", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(quotes.router, prefix="/api")
app.include_router(leads.router, prefix="/api")
app.include_router(rate_sheets.router, prefix="/api")
