from __future__ import annotations

import base64
import io
from pathlib import Path
from typing import Any, Dict

from PIL import Image

from app.core.enums import ImageKind
from app.services.filter_pipeline import FilterResult


class ExportService:
    """
    Convierte un `FilterResult` en algo que se pueda enviar o guardar:
    PNGs en disco, PNGs en base64 y un resumen JSON de regiones y etapas.
    """

    @staticmethod
    def to_png_bytes(image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def to_base64_png(self, image: Image.Image) -> str:
        return base64.b64encode(self.to_png_bytes(image)).decode("ascii")

    def save_images(self, result: FilterResult, output_dir: Path) -> Dict[ImageKind, Path]:
        """Guarda original, traducida y (si existe) preview como PNG."""
        output_dir.mkdir(parents=True, exist_ok=True)

        images = {
            ImageKind.ORIGINAL: result.original,
            ImageKind.TRANSLATED: result.translated,
            ImageKind.PREVIEW: result.preview,
        }
        paths: Dict[ImageKind, Path] = {}
        for kind, image in images.items():
            if image is None:
                continue
            path = output_dir / f"{kind.value}.png"
            image.save(path, format="PNG")
            paths[kind] = path
        return paths

    def summarize(self, result: FilterResult) -> Dict[str, Any]:
        """Resumen serializable del resultado (sin imágenes)."""
        fittings = {region.id: fitting for region, fitting in result.fittings}
        regions = []
        for region in result.regions:
            fitting = fittings.get(region.id)
            regions.append(
                {
                    "id": region.id,
                    "text": region.text,
                    "translated_text": region.translated_text,
                    "bbox": list(region.bbox.as_tuple()),
                    "confidence": region.confidence,
                    "style": region.style.model_dump(mode="json") if region.style else None,
                    "fitting": (
                        {
                            "strategy": fitting.strategy.value,
                            "success": fitting.success,
                            "scale_factor": fitting.scale_factor,
                            "font_size": fitting.font_size,
                            "final_text": fitting.final_text,
                            "bounds": list(fitting.bounds.as_tuple()),
                            "confidence": fitting.confidence,
                        }
                        if fitting
                        else None
                    ),
                }
            )

        return {
            "success": result.success,
            "cancelled": result.cancelled,
            "error": result.error,
            "confidence": result.confidence,
            "processing_time_ms": int(result.processing_time * 1000),
            "detected_language": result.detected_language,
            "regions": regions,
            "stages": [
                {
                    "stage": s.stage.value,
                    "success": s.success,
                    "duration_ms": int(s.duration * 1000),
                    "confidence": s.confidence,
                    "error": s.error,
                }
                for s in result.stages
            ],
        }

    def to_response(self, result: FilterResult) -> Dict[str, Any]:
        """Resumen más las imágenes en base64, para la respuesta síncrona."""
        payload = self.summarize(result)
        payload["images"] = {
            kind.value: self.to_base64_png(image) if image is not None else None
            for kind, image in (
                (ImageKind.ORIGINAL, result.original),
                (ImageKind.TRANSLATED, result.translated),
                (ImageKind.PREVIEW, result.preview),
            )
        }
        return payload
