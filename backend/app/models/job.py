"""Definición del modelo de datos de un job de filtrado.

Un job representa una ejecución del filtro en segundo plano (carga, OCR,
estilo, traducción, render, finalización). Se guarda en memoria; el cliente
consulta su progreso y descarga las imágenes cuando termina.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import ImageKind, JobStatus
from app.models.options import FilterOptions


class FilterJob(BaseModel):
    """Modelo principal que describe el estado de un trabajo."""

    id: str
    status: JobStatus = JobStatus.QUEUED  # Estado actual en el ciclo de vida
    options: FilterOptions = Field(default_factory=FilterOptions)
    filename: Optional[str] = None  # Nombre original de la imagen subida

    progress: float = 0.0  # Porcentaje 0–100, nunca retrocede
    progress_message: Optional[str] = None  # Mensaje de la etapa en curso
    error_message: Optional[str] = None  # Texto explicando por qué falló

    # Rutas de las imágenes exportadas (original / traducida / preview)
    outputs: Dict[ImageKind, Path] = Field(default_factory=dict)

    # Resumen del resultado para la consulta de estado
    confidence: Optional[float] = None
    regions_total: int = 0
    regions_translated: int = 0
    detected_language: Optional[str] = None
    processing_time_ms: Optional[int] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def mark_processing(self) -> None:
        """Marca el job como en proceso y refresca la marca temporal."""
        self.status = JobStatus.PROCESSING
        self.updated_at = datetime.now(timezone.utc)

    def update_progress(self, percent: float, message: str) -> None:
        """Avanza el progreso; los valores menores que el actual se ignoran."""
        self.progress = max(self.progress, min(100.0, percent))
        self.progress_message = message
        self.updated_at = datetime.now(timezone.utc)

    def mark_completed(self, outputs: Dict[ImageKind, Path]) -> None:
        """Marca el job como completado y guarda las rutas de salida."""
        self.status = JobStatus.COMPLETED
        self.outputs = outputs
        self.progress = 100.0
        self.updated_at = datetime.now(timezone.utc)

    def mark_failed(self, error_message: str) -> None:
        """Registra un fallo y almacena el mensaje de error mostrado al cliente."""
        self.status = JobStatus.FAILED
        self.error_message = error_message
        self.updated_at = datetime.now(timezone.utc)
