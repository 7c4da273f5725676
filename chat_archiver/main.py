# chat_archiver/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .dependencies import get_store
from .errors import ArchiverError, ConfigurationError, InvalidJobStateError, JobNotFoundError
from .routers import archive_router, scrape_router, thread_router

logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_store()
    store.initialize()
    logger.info("Database tables verified.")
    # Stale job recovery runs once per deployment (run.py, or `chat-archiver recover-jobs`),
    # never here: other workers may still be scraping
    yield


app = FastAPI(
    title="Chat Archiver",
    description="Scrapes chat channel history into a database and rebuilds reply threads.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(scrape_router.router, tags=["Scrape"])
app.include_router(thread_router.router, tags=["Threads"])
app.include_router(archive_router.router, tags=["Archive"])


def status_for(error: ArchiverError) -> int:
    if isinstance(error, (ConfigurationError, InvalidJobStateError)):
        return 400
    if isinstance(error, JobNotFoundError):
        return 404
    return 500


@app.exception_handler(ArchiverError)
async def archiver_error_handler(request: Request, exc: ArchiverError):
    return JSONResponse(status_code=status_for(exc), content={"detail": str(exc)})


@app.get("/")
def read_root():
    return {"message": "Archiver is running. Use POST /scrape/start to scrape a channel."}
