"""FastAPI web server for gramingest."""

from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from gramingest import GramingestConfig, IngestService, __version__
from gramingest.core.exporter import to_dict
from gramingest.exceptions import (
    AuthenticationError,
    ConfigError,
    GramingestError,
    ProfileNotFoundError,
)
from gramingest.models.job import ScrapeJob


# Request/Response models
class StartJobRequest(BaseModel):
    """Request body for starting a scrape."""

    username: str = Field(..., min_length=1, description="Instagram username to scrape")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


def _job_dict(job: ScrapeJob) -> dict:
    data = job.model_dump(mode="json")
    data["display_status"] = job.display_status
    return data


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def get_service(request: Request) -> IngestService:
    return request.app.state.service


router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Check API health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now().isoformat(),
    )


@router.post("/api/jobs", tags=["Jobs"])
async def start_job(body: StartJobRequest, service: IngestService = Depends(get_service)):
    """
    Start a scrape for one profile.

    Polling starts automatically; the job shows up in ``GET /api/jobs``.
    """
    result = await service.start_scrape(body.username)
    if not result.success:
        return _error_response(400, result.error or "Failed to start scrape")
    return {"success": True, "job": _job_dict(result.job)}


@router.get("/api/jobs", tags=["Jobs"])
async def list_jobs(service: IngestService = Depends(get_service)):
    """Active jobs and jobs already ingested in this process."""
    return {
        "success": True,
        "jobs": [_job_dict(job) for job in service.jobs],
        "completed": [_job_dict(job) for job in service.completed_jobs],
    }


@router.get("/api/jobs/{run_id}", tags=["Jobs"])
async def get_job(run_id: str, service: IngestService = Depends(get_service)):
    """One active or completed job."""
    job = service.get_job(run_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"No job {run_id}")
    return {"success": True, "job": _job_dict(job)}


@router.delete("/api/jobs/{run_id}", tags=["Jobs"])
async def dismiss_job(run_id: str, service: IngestService = Depends(get_service)):
    """Remove a finished job from the active list."""
    if not service.dismiss_job(run_id):
        raise HTTPException(status_code=404, detail=f"No finished job {run_id}")
    return {"success": True}


@router.post("/api/ingest/{dataset_id}", tags=["Data"])
async def ingest_dataset(dataset_id: str, service: IngestService = Depends(get_service)):
    """Ingest an existing dataset without starting a new scrape."""
    result = await service.ingest(dataset_id)
    if not result.success:
        return JSONResponse(status_code=422, content=to_dict(result))
    return to_dict(result)


@router.get("/api/profiles", tags=["Data"])
async def list_profiles(service: IngestService = Depends(get_service)):
    profiles = await service.list_profiles()
    return {
        "success": True,
        "profiles": [
            {
                **profile.model_dump(mode="json"),
                "display_image_url": service.proxied_image_url(profile.profile_image_ref),
            }
            for profile in profiles
        ],
    }


@router.get("/api/profiles/{profile_id}/posts", tags=["Data"])
async def list_posts(profile_id: str, service: IngestService = Depends(get_service)):
    posts = await service.list_posts(profile_id)
    return {
        "success": True,
        "posts": [
            {
                **post.model_dump(mode="json"),
                "display_image_url": service.proxied_image_url(post.media_ref),
            }
            for post in posts
        ],
    }


@router.delete("/api/profiles/{profile_id}", tags=["Data"])
async def delete_profile(profile_id: str, service: IngestService = Depends(get_service)):
    await service.delete_profile(profile_id)
    return {"success": True}


@router.get("/api/export", tags=["Data"])
async def export_data(service: IngestService = Depends(get_service)):
    """Every profile of the acting user with its posts."""
    exported = await service.export_profiles()
    return {"success": True, **exported}


@router.post("/api/images/migrate", tags=["Images"])
async def migrate_images(service: IngestService = Depends(get_service)):
    """Relay images still served from the CDN into owned storage."""
    result = await service.migrate_images()
    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump(mode="json"))
    return result.model_dump(mode="json")


def create_app(
    config: GramingestConfig | None = None,
    service: IngestService | None = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Configuration for the service, env/defaults if None
        service: Pre-built service, entered and closed by the app lifespan
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage service lifecycle."""
        async with (service or IngestService(config)) as active:
            app.state.service = active
            yield

    app = FastAPI(
        title="gramingest API",
        description="Instagram profile ingestion API",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(AuthenticationError)
    async def authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(401, str(exc))

    @app.exception_handler(ProfileNotFoundError)
    async def profile_not_found(request: Request, exc: ProfileNotFoundError):
        return _error_response(404, str(exc))

    @app.exception_handler(ConfigError)
    async def config_error(request: Request, exc: ConfigError):
        return _error_response(400, str(exc))

    @app.exception_handler(GramingestError)
    async def gramingest_error(request: Request, exc: GramingestError):
        return _error_response(502, str(exc))

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
