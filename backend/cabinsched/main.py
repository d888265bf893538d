import logging
import os
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError

from .db import Base, engine
from .routers import rotation, periods, selection, events, reminders

from .seed import seed_initial_data

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "false").lower() in ("1", "true", "yes")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(title="Cabin Selection Scheduler API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten this in prod
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rotation.router)
app.include_router(periods.router)
app.include_router(selection.router)
app.include_router(events.router)
app.include_router(reminders.router)


@app.on_event("startup")
def on_startup() -> None:
    """Wait for the database to be ready, then create tables."""
    max_attempts = 10
    delay_seconds = 3

    for attempt in range(1, max_attempts + 1):
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database ready, tables ensured.")
            break
        except OperationalError as e:
            logger.warning("DB not ready (attempt %d/%d): %s", attempt, max_attempts, e)
            if attempt == max_attempts:
                logger.error("Giving up on DB connection.")
                raise
            time.sleep(delay_seconds)

    if SEED_DEMO_DATA:
        seed_initial_data()


@app.get("/")
def root():
    return {"status": "ok", "message": "Cabin Selection Scheduler API"}
