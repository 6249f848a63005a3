"""Sustituye el texto de una imagen: reconstruye el fondo una vez y pinta cada traducción."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from PIL import Image

from app.models.options import OverflowOptions, ReconstructionOptions, RenderingOptions
from app.models.style import StyleModel
from app.models.text import TextRegion
from app.services.background_reconstructor import BackgroundReconstructor, ReconstructionResult
from app.services.text_fitter import FittingResult, TextFitter
from app.services.text_renderer import TextRenderer

logger = logging.getLogger(__name__)


@dataclass
class ReplacementResult:
    image: Image.Image
    reconstruction: ReconstructionResult
    fittings: List[Tuple[TextRegion, FittingResult]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # ids sin traducción
    confidence: float = 0.0
    processing_time: float = 0.0


class TextReplacer:
    def __init__(
        self,
        reconstructor: BackgroundReconstructor | None = None,
        fitter: TextFitter | None = None,
        renderer: TextRenderer | None = None,
    ) -> None:
        self.reconstructor = reconstructor or BackgroundReconstructor()
        self.fitter = fitter or TextFitter()
        self.renderer = renderer or TextRenderer()

    def replace(
        self,
        image: Image.Image,
        regions: Sequence[TextRegion],
        styles: Sequence[StyleModel | None] | None = None,
        overflow: OverflowOptions | None = None,
        rendering: RenderingOptions | None = None,
        reconstruction: ReconstructionOptions | None = None,
    ) -> ReplacementResult:
        """
        Reconstruye el fondo de todas las regiones y pinta las traducciones.

        Las regiones sin traducción no se tocan: se restauran sus píxeles
        originales aunque la reconstrucción haya borrado su zona.
        """
        start = time.perf_counter()
        overflow = overflow or OverflowOptions()
        rendering = rendering or RenderingOptions()
        styles = list(styles) if styles is not None else [r.style for r in regions]
        if len(styles) != len(regions):
            raise ValueError(f"Got {len(styles)} styles for {len(regions)} regions")

        source = image.convert("RGBA")
        translated = [r for r in regions if r.has_translation]
        recon = self.reconstructor.reconstruct(source, translated, reconstruction)

        if recon.success:
            canvas = recon.image.convert("RGBA")
        else:
            logger.warning("Reconstruction failed (%s), drawing over the original", recon.error)
            canvas = source.copy()

        result = ReplacementResult(image=canvas, reconstruction=recon)

        # Las regiones sin traducción se restauran antes de pintar: el texto
        # nuevo queda siempre encima, sea cual sea el orden de las regiones
        for region in regions:
            if not region.has_translation:
                box = region.bbox.clamped(*source.size).as_tuple()
                canvas.paste(source.crop(box), box[:2])
                result.skipped.append(region.id)

        for region, style in zip(regions, styles):
            if not region.has_translation:
                continue

            style = style or StyleModel.default(
                font_size=max(8.0, round(region.bbox.height * 0.75)),
                baseline=region.bbox.y1 - region.bbox.height * 0.2,
            )
            fitting = self.fitter.fit(
                region.bbox,
                region.translated_text or "",
                style,
                overflow,
                image_size=source.size,
            )
            result.fittings.append((region, fitting))
            if not fitting.success:
                logger.warning("Region %s did not fit, drawing best effort", region.id)

            bounds = fitting.bounds
            rendered = self.renderer.render(
                fitting.final_text,
                style.with_font_size(fitting.font_size),
                (bounds.width, bounds.height),
                rendering,
            )
            if not rendered.success:
                logger.warning("Region %s could not be rendered: %s", region.id, rendered.error)
                continue
            canvas.alpha_composite(rendered.image, dest=(bounds.x0, bounds.y0))

        processed = [f.confidence for _, f in result.fittings]
        result.confidence = sum(processed) / len(processed) if processed else 0.0
        result.processing_time = time.perf_counter() - start

        logger.info(
            "Replaced %d regions (%d skipped), confidence %.2f",
            len(result.fittings),
            len(result.skipped),
            result.confidence,
        )
        return result
