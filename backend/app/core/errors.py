"""Excepciones del filtro de traducción de imágenes.

Sólo los fallos que abortan una ejecución son excepciones. Los casos no
fatales (sin texto detectado, región sin traducción, reconstrucción o ajuste
fallidos) se registran en el log y se reflejan en la confianza del resultado.
"""

from __future__ import annotations


class FilterError(Exception):
    """Base para todos los errores del pipeline."""


class ImageLoadError(FilterError):
    """Los bytes recibidos no se pueden decodificar como imagen."""


class StageFailedError(FilterError):
    """Una etapa con nombre lanzó una excepción y la ejecución se aborta."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


class FilterCancelledError(FilterError):
    """El llamador pidió cancelar la ejecución entre dos etapas."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"Filter cancelled before stage '{stage}'")
        self.stage = stage
