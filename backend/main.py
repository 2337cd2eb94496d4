"""
Wellness Tracker – Backend API
Start with: uvicorn main:app --reload
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import settings
from db import init_db
from routers import accounts, live, quiz, sessions

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("database ready at %s", settings.DATABASE_URL)
    yield


app = FastAPI(
    title="Wellness Tracker API",
    description="Practice timer, guided breathing, intake quiz and progress tracking",
    version="0.1.0",
    lifespan=lifespan,
)

# Allow frontend (Next.js) to call this API
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(accounts.router)
app.include_router(quiz.router)
app.include_router(sessions.router)
app.include_router(live.router)


@app.get("/health")
def health():
    """Check that the API is running. Frontend can call this first."""
    return {"status": "ok", "message": "Wellness Tracker API is running"}


@app.get("/")
def root():
    """Root welcome."""
    return {"app": "Wellness Tracker", "docs": "/docs"}
