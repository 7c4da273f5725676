# chat_archiver/routers/scrape_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from chat_archiver import schemas
from chat_archiver.controllers.scrape_controller import ScrapeOrchestrator
from chat_archiver.dependencies import get_orchestrator, get_store
from chat_archiver.services.message_store import MessageStore

router = APIRouter(prefix="/scrape")


@router.post("/start", response_model=schemas.ScrapeJobOut)
async def start_scrape(request: schemas.ScrapeStartRequest,
                       orchestrator: ScrapeOrchestrator = Depends(get_orchestrator)):
    # Runs to completion; a failed job is recorded before the error reaches the client
    return await orchestrator.start_job(request.channel_id, request.scrape_type)


@router.get("/status/{job_id}", response_model=schemas.ScrapeJobOut)
def get_job_status(job_id: int, store: MessageStore = Depends(get_store)):
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.get("/jobs", response_model=List[schemas.ScrapeJobOut])
def list_jobs(status: Optional[str] = None, store: MessageStore = Depends(get_store)):
    return store.get_jobs(status)


@router.post("/resume/{job_id}", response_model=schemas.ScrapeJobOut)
def resume_job(job_id: int, orchestrator: ScrapeOrchestrator = Depends(get_orchestrator)):
    """Queue a new pending job linked to an interrupted one. Run it with POST /scrape/run/{id}."""
    return orchestrator.resume_job(job_id)


@router.post("/run/{job_id}", response_model=schemas.ScrapeJobOut)
async def run_job(job_id: int, orchestrator: ScrapeOrchestrator = Depends(get_orchestrator)):
    """Execute a pending job, such as one created by a resume."""
    return await orchestrator.execute_job(job_id)
