"""Infiere el estilo visual (color, tipografía, layout, efectos) de una región.

Todo son heurísticas sobre los píxeles del recorte: bordes Sobel para separar
texto y fondo, rachas de tinta para el grosor, filas con tinta para el tamaño.
Los umbrales vienen de `Settings` porque no tienen base empírica documentada.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
from PIL import Image

from app.core.config import Settings, get_settings
from app.core.enums import (
    ColorScheme,
    FontStyle,
    FontWeight,
    TextAlignment,
    TextDecoration,
)
from app.models.style import (
    ColorStyle,
    Effects,
    LayoutStyle,
    Margins,
    OutlineEffect,
    ShadowEffect,
    StyleModel,
    Typography,
)
from app.models.text import BBox, TextRegion
from app.services.font_service import classify_font, dark_runs, family_for

logger = logging.getLogger(__name__)


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """Magnitud Sobel 3×3 normalizada a [0, 1]; el borde de 1px queda a 0."""
    edges = np.zeros_like(gray, dtype=np.float64)
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return edges
    p = gray.astype(np.float64)
    gx = (p[:-2, 2:] + 2 * p[1:-1, 2:] + p[2:, 2:]) - (p[:-2, :-2] + 2 * p[1:-1, :-2] + p[2:, :-2])
    gy = (p[2:, :-2] + 2 * p[2:, 1:-1] + p[2:, 2:]) - (p[:-2, :-2] + 2 * p[:-2, 1:-1] + p[:-2, 2:])
    edges[1:-1, 1:-1] = np.minimum(1.0, np.hypot(gx, gy) / 255.0)
    return edges


def luminance(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114


def contrast_ratio(a: float, b: float) -> float:
    lighter, darker = max(a, b), min(a, b)
    return (lighter + 0.05) / (darker + 0.05)


def _to_rgb(values: np.ndarray) -> Tuple[int, int, int]:
    r, g, b = (int(round(float(v))) for v in values[:3])
    return r, g, b


class StyleAnalyzer:
    """
    Analizador puro: mismo recorte y misma caja producen siempre el mismo
    `StyleModel`. Nunca lanza; ante cualquier fallo devuelve el estilo neutro.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def analyze(self, image: Image.Image, bbox: BBox, text: str = "") -> StyleModel:
        try:
            return self._analyze(image, bbox, text)
        except Exception:
            logger.exception("Style analysis failed for bbox %s, using defaults", bbox.as_tuple())
            return StyleModel.default(
                font_size=max(8.0, round(bbox.height * 0.75)),
                baseline=bbox.y1 - bbox.height * 0.2,
            )

    def analyze_regions(
        self, image: Image.Image, regions: List[TextRegion]
    ) -> List[TextRegion]:
        """Devuelve copias de las regiones con `style` relleno, en el mismo orden."""
        return [
            region.model_copy(update={"style": self.analyze(image, region.bbox, region.text)})
            for region in regions
        ]

    # ---------- Núcleo ----------

    def _analyze(self, image: Image.Image, bbox: BBox, text: str) -> StyleModel:
        box = bbox.clamped(image.width, image.height)
        crop = image.convert("RGBA").crop(box.as_tuple())
        rgba = np.asarray(crop, dtype=np.float64)
        rgb = rgba[..., :3]
        alpha = rgba[..., 3]
        gray = rgb.mean(axis=2)
        edges = sobel_magnitude(gray)

        color, text_is_darker = self._analyze_colors(rgb, edges)
        # Trabajamos siempre con "tinta oscura": si el texto es claro, invertimos
        ink = gray if text_is_darker else 255.0 - gray

        typography = self._analyze_typography(ink, box, text)
        layout = self._analyze_layout(box, image.width, image.height)
        effects = self._analyze_effects(gray, edges, alpha, color)
        confidence = self.confidence(color, typography, effects)

        return StyleModel(
            color=color,
            typography=typography,
            layout=layout,
            effects=effects,
            confidence=confidence,
        )

    def _analyze_colors(self, rgb: np.ndarray, edges: np.ndarray) -> Tuple[ColorStyle, bool]:
        brightness = luminance(rgb)
        text_mask = edges > self.settings.style_edge_threshold
        bg_mask = ~text_mask

        text_brightness = float(brightness[text_mask].mean()) if text_mask.any() else 0.0
        bg_brightness = float(brightness[bg_mask].mean()) if bg_mask.any() else 255.0
        text_rgb = rgb[text_mask].mean(axis=0) if text_mask.any() else np.zeros(3)
        bg_rgb = rgb[bg_mask].mean(axis=0) if bg_mask.any() else np.full(3, 255.0)

        # La clase más oscura se toma como color de texto; si es el fondo, se intercambian
        text_is_darker = text_brightness <= bg_brightness
        if not text_is_darker:
            text_rgb, bg_rgb = bg_rgb, text_rgb
        text_color, background = _to_rgb(text_rgb), _to_rgb(bg_rgb)

        quantized = (rgb.astype(np.int64) // 16) * 16
        packed = (quantized[..., 0] << 16) | (quantized[..., 1] << 8) | quantized[..., 2]
        values, counts = np.unique(packed.ravel(), return_counts=True)
        top = int(values[int(np.argmax(counts))])
        dominant = ((top >> 16) & 0xFF, (top >> 8) & 0xFF, top & 0xFF)

        mean_brightness = float(brightness.mean())
        if mean_brightness > 200:
            scheme = ColorScheme.LIGHT
        elif mean_brightness < 80:
            scheme = ColorScheme.DARK
        else:
            scheme = ColorScheme.MIXED

        return (
            ColorStyle(
                dominant=dominant,
                text=text_color,
                background=background,
                contrast=contrast_ratio(text_brightness, bg_brightness),
                scheme=scheme,
            ),
            text_is_darker,
        )

    def _analyze_typography(self, ink: np.ndarray, box: BBox, text: str) -> Typography:
        s = self.settings
        height, width = ink.shape

        glyph_rows = np.flatnonzero((ink < s.style_glyph_threshold).any(axis=1))
        glyph_height = (
            int(glyph_rows[-1] - glyph_rows[0] + 1) if glyph_rows.size else box.height
        )
        size = float(max(8, round(glyph_height * 0.75)))

        dark = ink < s.style_dark_threshold

        # Grosor medio de trazo en la banda media
        band = dark[int(height * 0.3) : int(height * 0.7)]
        runs = [run for row in band for run in dark_runs(row)]
        stroke = float(np.mean(runs)) if runs else 1.0
        if stroke > s.style_bold_stroke_px:
            weight = FontWeight.BOLD
        elif stroke < s.style_light_stroke_px:
            weight = FontWeight.LIGHT
        else:
            weight = FontWeight.NORMAL

        style = FontStyle.ITALIC if self._slant(dark) > s.style_italic_slant else FontStyle.NORMAL

        chars = len(text)
        letter_spacing = max(0.0, width / chars - 10) if chars > 1 else 0.0
        line_count = max(1, text.count("\n") + 1)
        line_height = box.height / line_count

        decoration = TextDecoration.NONE
        underline_row = dark[min(height - 1, int(height * 0.9))]
        if underline_row.size and underline_row.mean() > 0.5:
            decoration = TextDecoration.UNDERLINE

        family = family_for(classify_font(ink, s.style_dark_threshold))

        return Typography(
            family=family,
            size=size,
            weight=weight,
            style=style,
            letter_spacing=letter_spacing,
            line_height=line_height,
            decoration=decoration,
        )

    def _slant(self, dark: np.ndarray) -> float:
        """
        Inclinación normalizada: por cada grupo de columnas con tinta (≈ glifo)
        comparamos el centro horizontal de la mitad superior con el de la
        inferior y lo dividimos por la altura del glifo.
        """
        rows = np.flatnonzero(dark.any(axis=1))
        if rows.size < 4:
            return 0.0
        glyphs = dark[rows[0] : rows[-1] + 1]
        h = glyphs.shape[0]
        top, bottom = glyphs[: h // 2], glyphs[h - h // 2 :]

        column_has_ink = glyphs.any(axis=0)
        padded = np.concatenate(([False], column_has_ink, [False]))
        edges = np.flatnonzero(padded[1:] != padded[:-1])

        offsets = []
        for start, end in zip(edges[::2], edges[1::2]):
            top_cols = np.flatnonzero(top[:, start:end].any(axis=0))
            bottom_cols = np.flatnonzero(bottom[:, start:end].any(axis=0))
            if top_cols.size == 0 or bottom_cols.size == 0:
                continue
            offsets.append((top_cols.mean() - bottom_cols.mean()) / h)

        if not offsets:
            return 0.0
        return abs(float(np.mean(offsets)))

    def _analyze_layout(self, box: BBox, image_w: int, image_h: int) -> LayoutStyle:
        center_x, _ = box.center
        if center_x < image_w / 3:
            alignment = TextAlignment.LEFT
        elif center_x > image_w * 2 / 3:
            alignment = TextAlignment.RIGHT
        else:
            alignment = TextAlignment.CENTER

        return LayoutStyle(
            alignment=alignment,
            rotation=0.0,
            baseline=box.y1 - box.height * 0.2,
            margins=Margins(
                top=box.y0,
                right=image_w - box.x1,
                bottom=image_h - box.y1,
                left=box.x0,
            ),
        )

    def _analyze_effects(
        self, gray: np.ndarray, edges: np.ndarray, alpha: np.ndarray, color: ColorStyle
    ) -> Effects:
        s = self.settings
        total = max(1, gray.size)

        shadow_pixels = int(((gray > 50) & (gray < 150)).sum())
        strong_edges = int((edges > s.style_strong_edge_threshold).sum())

        shadow = ShadowEffect() if shadow_pixels > total * s.style_shadow_ratio else None
        outline = (
            OutlineEffect(color=color.background)
            if strong_edges > total * s.style_outline_ratio
            else None
        )
        opacity = float(alpha.mean() / 255.0) if alpha.size else 1.0

        return Effects(shadow=shadow, outline=outline, opacity=min(1.0, max(0.0, opacity)))

    def confidence(self, color: ColorStyle, typography: Typography, effects: Effects) -> float:
        """0.5 base, bonos por contraste y tamaño, -0.05 si hay sombra o contorno."""
        confidence = 0.5
        if color.contrast > 4.5:
            confidence += 0.2
        if color.contrast > 7:
            confidence += 0.1
        if typography.size > 12:
            confidence += 0.1
        if typography.size > 16:
            confidence += 0.1
        if effects.shadow is not None or effects.outline is not None:
            confidence -= 0.05
        return min(1.0, max(0.0, confidence))
