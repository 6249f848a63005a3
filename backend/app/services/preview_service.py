"""Imágenes de comparación original / traducida para revisar el resultado."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageDraw

from app.services.font_service import load_truetype

logger = logging.getLogger(__name__)

GAP = 20
LABEL_BAND = 40
BOTTOM_MARGIN = 20
DIFFERENCE_THRESHOLD = 30


@dataclass
class PreviewSet:
    side_by_side: Image.Image
    overlay: Image.Image
    difference: Image.Image


class PreviewService:
    def side_by_side(self, original: Image.Image, translated: Image.Image) -> Image.Image:
        """Ambas imágenes en paralelo con su etiqueta: (2w + 20) × (h + 60)."""
        w = max(original.width, translated.width)
        h = max(original.height, translated.height)
        canvas = Image.new("RGB", (2 * w + GAP, h + LABEL_BAND + BOTTOM_MARGIN), "white")
        canvas.paste(original.convert("RGB"), (0, LABEL_BAND))
        canvas.paste(translated.convert("RGB"), (w + GAP, LABEL_BAND))

        draw = ImageDraw.Draw(canvas)
        font = load_truetype(None, 16)
        draw.text((10, 12), "Original", fill="black", font=font)
        draw.text((w + GAP + 10, 12), "Translated", fill="black", font=font)
        return canvas

    def overlay(self, original: Image.Image, translated: Image.Image) -> Image.Image:
        base = original.convert("RGB")
        top = translated.convert("RGB").resize(base.size)
        return Image.blend(base, top, 0.5)

    def difference(self, original: Image.Image, translated: Image.Image) -> Image.Image:
        """Rojo donde cambió el píxel (suma de canales > 30); el resto en gris."""
        a = np.asarray(original.convert("RGB"), dtype=np.int32)
        b = np.asarray(translated.convert("RGB").resize(original.size), dtype=np.int32)

        changed = np.abs(a - b).sum(axis=-1) > DIFFERENCE_THRESHOLD
        gray = a.mean(axis=-1).astype(np.uint8)
        out = np.repeat(gray[..., None], 3, axis=-1)
        out[changed] = (255, 0, 0)
        logger.debug("Difference preview: %d changed pixels", int(changed.sum()))
        return Image.fromarray(out, "RGB")

    def build(self, original: Image.Image, translated: Image.Image) -> PreviewSet:
        return PreviewSet(
            side_by_side=self.side_by_side(original, translated),
            overlay=self.overlay(original, translated),
            difference=self.difference(original, translated),
        )
