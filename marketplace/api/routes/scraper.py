"""Scraper job endpoints (admin only)."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, require_roles
from marketplace.api.responses import envelope
from marketplace.api.schemas import ScraperJobCreate, ScraperJobUpdate
from marketplace.container import ServiceContainer

router = APIRouter(
    prefix="/scraper",
    tags=["scraper"],
    dependencies=[Depends(require_roles("admin"))],
)


@router.post("/jobs", status_code=status.HTTP_201_CREATED)
def create_job(body: ScraperJobCreate, container: ServiceContainer = Depends(get_container)):
    job = container.scraper.create_job(
        body.url, product_id=body.productId, selector=body.selector, frequency=body.frequency
    )
    return envelope(job, status=201)


@router.get("/jobs")
def list_jobs(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    container: ServiceContainer = Depends(get_container),
):
    jobs, meta = container.scraper.list_jobs(page=page, limit=limit, status=status_filter)
    return envelope(jobs, meta=meta)


@router.get("/jobs/{job_id}")
def get_job(job_id: str, container: ServiceContainer = Depends(get_container)):
    return envelope(container.scraper.get_job(job_id))


@router.patch("/jobs/{job_id}")
def update_job(
    job_id: str, body: ScraperJobUpdate, container: ServiceContainer = Depends(get_container)
):
    data: Dict[str, Any] = body.model_dump(exclude_unset=True)
    return envelope(container.scraper.update_job(job_id, data))


@router.delete("/jobs/{job_id}")
def delete_job(job_id: str, container: ServiceContainer = Depends(get_container)):
    container.scraper.delete_job(job_id)
    return envelope({"message": "Scraper job deleted"})


@router.post("/jobs/{job_id}/run")
def run_job(job_id: str, container: ServiceContainer = Depends(get_container)):
    """Scrape now and return the job in its final state."""
    return envelope(container.scraper.scrape(job_id))


@router.post("/run-scheduled")
def run_scheduled(container: ServiceContainer = Depends(get_container)):
    return envelope({"scheduled": container.scraper.run_scheduled_scrapes()})
