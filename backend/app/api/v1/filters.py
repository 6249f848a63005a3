from __future__ import annotations

import json
import logging
from functools import lru_cache

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
    status,
)
from fastapi.responses import FileResponse
from pydantic import ValidationError

from app.core.enums import ImageKind, ProcessingStage
from app.models.job import FilterJob
from app.models.options import FilterOptions
from app.services.export_service import ExportService
from app.services.filter_pipeline import FilterPipeline
from app.services.job_service import JobService, run_filter_job
from app.services.ocr_service import OcrService
from app.services.translation_service import TranslationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/filters", tags=["filters"])

# Sin base de datos: los jobs viven en memoria mientras el proceso esté en marcha
job_service = JobService()
export_service = ExportService()


@lru_cache
def get_pipeline() -> FilterPipeline:
    """Pipeline por defecto con Google Vision y OpenAI (se crea al primer uso)."""
    return FilterPipeline(ocr=OcrService(), translator=TranslationService())


def parse_options(options: str | None = Form(default=None)) -> FilterOptions:
    """Las opciones llegan como JSON en un campo de formulario junto a la imagen."""
    if not options:
        return FilterOptions()
    try:
        return FilterOptions.model_validate(json.loads(options))
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid filter options: {e}",
        )


async def read_upload(file: UploadFile) -> bytes:
    data = await file.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty.",
        )
    return data


def job_payload(job: FilterJob) -> dict:
    return {
        "job_id": job.id,
        "status": job.status,
        "progress": job.progress,
        "progress_message": job.progress_message,
        "error_message": job.error_message,
        "confidence": job.confidence,
        "regions_total": job.regions_total,
        "regions_translated": job.regions_translated,
        "detected_language": job.detected_language,
        "processing_time_ms": job.processing_time_ms,
        "images": sorted(kind.value for kind in job.outputs),
    }


@router.post("", summary="Translate the text of an image and return the result")
async def apply_filter(
    file: UploadFile = File(...),
    options: FilterOptions = Depends(parse_options),
    pipeline: FilterPipeline = Depends(get_pipeline),
) -> dict:
    image_bytes = await read_upload(file)
    result = await pipeline.apply_filter(image_bytes, options)
    # Si ni siquiera se pudo decodificar, el problema es la petición
    if result.failed_stage == ProcessingStage.LOADING:
        logger.info("Rejected upload %s: %s", file.filename, result.error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return export_service.to_response(result)


@router.post(
    "/jobs",
    summary="Create a background filter job",
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_filter_job(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    options: FilterOptions = Depends(parse_options),
    pipeline: FilterPipeline = Depends(get_pipeline),
) -> dict:
    image_bytes = await read_upload(file)
    job = job_service.create_job(options, filename=file.filename)
    logger.info("Queued filter job %s (%s)", job.id, file.filename)
    background_tasks.add_task(
        run_filter_job, job_service, job.id, image_bytes, pipeline, export_service
    )
    return job_payload(job)


@router.get("/jobs", summary="List filter jobs")
async def list_filter_jobs() -> list[dict]:
    return [job_payload(job) for job in job_service.list_jobs()]


@router.get("/jobs/{job_id}", summary="Get filter job status")
async def get_filter_job(job_id: str) -> dict:
    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found.",
        )
    return job_payload(job)


@router.get("/jobs/{job_id}/image/{kind}", summary="Download a job image as PNG")
async def download_job_image(job_id: str, kind: ImageKind):
    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found.",
        )

    path = job.outputs.get(kind)
    if path is None or not path.exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job has no {kind.value} image yet.",
        )

    return FileResponse(path, media_type="image/png", filename=f"{job.id}_{kind.value}.png")
