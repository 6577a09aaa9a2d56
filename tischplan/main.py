import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import tischplan.models  # noqa: F401
from tischplan.routers import activities, bookings, dashboard, floors, notifications, tables, waiting_list
from tischplan.routers.websocket import websocket_router
from tischplan.config import settings
from tischplan.database import Base, SessionLocal, engine
from tischplan.exceptions import ConflictError, conflict_error_handler
from tischplan.services.notification_service import sweep
from tischplan.services.table_state import sync_table_statuses
from tischplan.utils.logging_config import setup_logging
from tischplan.utils.timeutils import utcnow
from tischplan.middleware.logging_middleware import log_requests


logger = setup_logging()
logger.info("Application starting...")


def run_with_session(job):
    db = SessionLocal()
    try:
        return job(db, utcnow())
    finally:
        db.close()


async def run_periodically(name: str, job, interval_seconds: int):
    """Führt einen synchronen Job im Worker-Thread aus, Fehler beenden die Schleife nicht."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(run_with_session, job)
        except Exception:
            logger.exception(f"Hintergrund-Job {name} fehlgeschlagen")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Datenbanktabellen angelegt/geprüft")

    tasks = []
    if settings.enable_background_jobs:
        tasks.append(asyncio.create_task(
            run_periodically("status-sync", sync_table_statuses, settings.status_sync_interval_seconds)
        ))
        tasks.append(asyncio.create_task(
            run_periodically("notification-sweep", sweep, settings.notification_sweep_interval_seconds)
        ))
        logger.info("Hintergrund-Jobs gestartet")

    yield

    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    logger.info("Application stopped")


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

app.middleware("http")(log_requests)
app.add_exception_handler(ConflictError, conflict_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(floors.router)
app.include_router(tables.router)
app.include_router(bookings.router)
app.include_router(waiting_list.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)
app.include_router(activities.router)
app.include_router(websocket_router)

@app.get("/")
def root() -> dict:
        return {"message": "Tischplan läuft!", "app": settings.app_name}

@app.get("/health")
def health() -> dict:
        return {"status": "ok"}
