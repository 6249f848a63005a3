"""Opciones del filtro. Son modelos Pydantic para poder recibirlas por la API.

Los valores por defecto salen de `Settings`, así que se pueden afinar desde
`.env` sin tocar el código.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from app.core.config import get_settings
from app.core.enums import QualityLevel, ReconstructionMethod


class OverflowOptions(BaseModel):
    """Cómo se comporta el ajuste cuando la traducción no cabe."""

    max_scale_down: float = Field(
        default_factory=lambda: get_settings().fit_max_scale_down, gt=0.0, le=1.0
    )
    max_scale_up: float = Field(
        default_factory=lambda: get_settings().fit_max_scale_up, ge=1.0
    )
    allow_line_breaking: bool = Field(
        default_factory=lambda: get_settings().fit_allow_line_breaking
    )
    allow_abbreviation: bool = Field(
        default_factory=lambda: get_settings().fit_allow_abbreviation
    )
    expand_bounds: bool = Field(default_factory=lambda: get_settings().fit_expand_bounds)
    max_expansion: int = Field(
        default_factory=lambda: get_settings().fit_max_expansion, ge=0
    )


class RenderingOptions(BaseModel):
    # False: se pinta con los colores y efectos neutros en lugar de los analizados
    preserve_original_style: bool = True
    adaptive_scaling: bool = True
    quality_level: QualityLevel = QualityLevel.HIGH_QUALITY
    antialiasing: bool = True


class ReconstructionOptions(BaseModel):
    """Parámetros de la reconstrucción de fondo."""

    method: ReconstructionMethod = ReconstructionMethod.CONTENT_AWARE_FILL
    quality: QualityLevel = QualityLevel.BALANCED
    # False: el suavizado con preservación de bordes se sustituye por la media de vecinos
    preserve_edges: bool = True
    blending_radius: int = Field(
        default_factory=lambda: get_settings().reconstruction_blending_radius, ge=1
    )
    iterations: int = Field(
        default_factory=lambda: get_settings().reconstruction_iterations, ge=1
    )
    texture_analysis: bool = True
    # Semilla del muestreo de periodicidad: fija para que el resultado sea reproducible
    seed: int = Field(default_factory=lambda: get_settings().reconstruction_seed)


class FilterOptions(BaseModel):
    source_lang: str = Field(default_factory=lambda: get_settings().default_source_lang)
    target_lang: str = Field(default_factory=lambda: get_settings().default_target_lang)
    preserve_style: bool = True
    # Nivel general; se aplica a render y reconstrucción salvo que éstos fijen el suyo
    quality_level: QualityLevel = QualityLevel.BALANCED
    overflow: OverflowOptions = Field(default_factory=OverflowOptions)
    rendering: RenderingOptions = Field(default_factory=RenderingOptions)
    reconstruction: ReconstructionOptions = Field(default_factory=ReconstructionOptions)
    enable_preview: bool = True

    @model_validator(mode="after")
    def _check_langs(self) -> "FilterOptions":
        if not self.target_lang or self.target_lang == "auto":
            raise ValueError("target_lang must be a concrete language code")
        return self

    @model_validator(mode="after")
    def _propagate_quality(self) -> "FilterOptions":
        if "quality_level" not in self.rendering.model_fields_set:
            self.rendering = self.rendering.model_copy(
                update={"quality_level": self.quality_level}
            )
        if "quality" not in self.reconstruction.model_fields_set:
            self.reconstruction = self.reconstruction.model_copy(
                update={"quality": self.quality_level}
            )
        return self
