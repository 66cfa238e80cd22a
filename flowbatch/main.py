from fastapi import FastAPI
import uvicorn
import logging
import sys
import asyncio
from contextlib import asynccontextmanager

from .core.config import settings
from .core.logger import ListLogHandler

# This must be set BEFORE any asyncio event loop is created
if sys.platform == 'win32':
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

# Configure Logging
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_stream_handler = ListLogHandler()
_stream_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(settings.log_file, mode='a', encoding='utf-8'),
        _stream_handler
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- STARTUP ---
    from .database import engine, Base
    from .core.container import container
    from .api.routers.jobs import publish_job_update

    # Create tables
    Base.metadata.create_all(bind=engine)

    # Hydrate the task store (interrupted jobs go back to 'pending')
    store = container.task_store()
    try:
        await store.hydrate()
    except Exception as e:
        logger.error(f"[ERROR] Failed to hydrate jobs on startup: {e}", exc_info=True)
        container.core_job_repository().rollback()
    store.subscribe(publish_job_update)

    logger.info("[OK] Scheduler ready")

    yield

    # --- SHUTDOWN ---
    logger.warning("[SHUTDOWN] Application shutdown triggered...")
    scheduler = container.scheduler()
    if scheduler.is_running:
        await container.task_service().stop_run()
    store.unsubscribe(publish_job_update)

    # Browser sessions stay alive for reuse by the next process
    await container.session_manager().close()
    container.worker_session().close()
    logger.info("[OK] Shutdown complete.")


app = FastAPI(title="Flow Batch", lifespan=lifespan)

# ========== Include API Routers ==========
from .api.routers import accounts, jobs, sessions, system

app.include_router(accounts.router, prefix="/api")
app.include_router(jobs.router, prefix="/api")
app.include_router(sessions.router, prefix="/api")
app.include_router(system.router, prefix="/api")


if __name__ == "__main__":
    uvicorn.run("flowbatch.main:app", host="0.0.0.0", port=8000, reload=True)
