"""Servicio simple en memoria para gestionar jobs de filtrado.

Esta clase actúa como una pequeña capa de persistencia: crea, guarda y
devuelve jobs. `run_filter_job` es la tarea en segundo plano que ejecuta el
pipeline y va volcando el progreso en el job.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional
from uuid import uuid4

from app.core.config import get_settings
from app.models.job import FilterJob
from app.models.options import FilterOptions
from app.services.export_service import ExportService
from app.services.filter_pipeline import FilterPipeline

logger = logging.getLogger(__name__)


class JobService:
    """
    Gestión de jobs. MVP: almacenamiento en memoria.
    Más adelante se puede sustituir por BD persistente.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, FilterJob] = {}

    def create_job(self, options: FilterOptions, filename: str | None = None) -> FilterJob:
        """Crea un job nuevo y lo guarda en el diccionario interno."""
        job = FilterJob(id=str(uuid4()), options=options, filename=filename)
        self._jobs[job.id] = job
        return job

    def get_job(self, job_id: str) -> Optional[FilterJob]:
        """Devuelve un job por id o None si no existe."""
        return self._jobs.get(job_id)

    def update_job(self, job: FilterJob) -> None:
        # En un futuro, aquí iría la persistencia real (DB).
        self._jobs[job.id] = job

    def list_jobs(self) -> List[FilterJob]:
        """Listado sencillo para depuración o endpoints futuros."""
        return list(self._jobs.values())


async def run_filter_job(
    job_service: JobService,
    job_id: str,
    image_bytes: bytes,
    pipeline: FilterPipeline,
    export_service: ExportService | None = None,
    output_dir: Path | None = None,
) -> None:
    """Ejecuta el filtro de un job y guarda sus imágenes en `data_dir/<job_id>`."""
    job = job_service.get_job(job_id)
    if job is None:
        logger.warning("Job %s disappeared before processing", job_id)
        return

    export_service = export_service or ExportService()
    output_dir = output_dir or get_settings().data_dir / job.id

    def on_progress(percent: float, message: str) -> None:
        job.update_progress(percent, message)
        job_service.update_job(job)

    job.mark_processing()
    job_service.update_job(job)

    result = await pipeline.apply_filter(image_bytes, job.options, progress=on_progress)

    job.confidence = result.confidence
    job.regions_total = len(result.regions)
    job.regions_translated = sum(1 for r in result.regions if r.has_translation)
    job.detected_language = result.detected_language
    job.processing_time_ms = int(result.processing_time * 1000)

    try:
        outputs = export_service.save_images(result, output_dir)
    except OSError as exc:
        logger.error("Job %s could not save its images: %s", job.id, exc)
        job.mark_failed(f"Cannot save images: {exc}")
        job_service.update_job(job)
        return

    if result.success:
        job.mark_completed(outputs)
    else:
        job.outputs = outputs
        job.mark_failed(result.error or "Filter did not complete")
    job_service.update_job(job)
    logger.info("Job %s finished with status %s", job.id, job.status.value)
