"""Busca una disposición del texto traducido que quepa en (o alrededor de) la caja original.

Las estrategias se prueban en orden fijo y gana la primera que encaja:

1. preserve_bounds   -> escala dentro de la caja original
2. adaptive_scaling  -> escala con la caja algo expandida
3. multi_line_wrap   -> partir en líneas (allow_line_breaking)
4. overflow_expand   -> expansión completa (expand_bounds)
5. abbreviation      -> quitar palabras vacías / truncar (allow_abbreviation)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from app.core.enums import ReplacementStrategy
from app.models.options import OverflowOptions
from app.models.style import StyleModel
from app.models.text import BBox
from app.services.font_service import FontResolver
from app.services.layout_service import LINE_HEIGHT_FACTOR, LayoutService, TextLayout

logger = logging.getLogger(__name__)

SEARCH_ITERATIONS = 10
ABBREVIATION_PENALTY = 0.8
MIN_TRUNCATED_LENGTH = 10
TRUNCATION_STEP = 5

STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
}


@dataclass(frozen=True)
class FittingResult:
    strategy: ReplacementStrategy
    success: bool
    scale_factor: float
    font_size: float
    final_text: str
    layout: TextLayout
    bounds: BBox
    confidence: float


def remove_stop_words(text: str) -> str:
    """Quita palabras vacías sólo si el texto tiene más de 3 palabras."""
    words = text.split()
    if len(words) <= 3:
        return text
    kept = [w for w in words if re.sub(r"\W", "", w).lower() not in STOP_WORDS]
    return " ".join(kept) if kept else text


def truncation_candidates(text: str) -> List[str]:
    """Versiones truncadas con "..." de más larga a más corta (mínimo 10 caracteres)."""
    start = max(MIN_TRUNCATED_LENGTH, int(len(text) * 0.7))
    candidates = []
    for length in range(start, MIN_TRUNCATED_LENGTH - 1, -TRUNCATION_STEP):
        if length >= len(text):
            continue
        candidates.append(text[:length].rstrip() + "...")
    return candidates


class TextFitter:
    def __init__(
        self,
        font_resolver: FontResolver | None = None,
        layout_service: LayoutService | None = None,
    ) -> None:
        self.fonts = font_resolver or FontResolver()
        self.layout = layout_service or LayoutService()
        self._strategies: Dict[ReplacementStrategy, Callable[..., FittingResult | None]] = {
            ReplacementStrategy.PRESERVE_BOUNDS: self._preserve_bounds,
            ReplacementStrategy.ADAPTIVE_SCALING: self._adaptive_scaling,
            ReplacementStrategy.MULTI_LINE_WRAP: self._multi_line_wrap,
            ReplacementStrategy.OVERFLOW_EXPAND: self._overflow_expand,
            ReplacementStrategy.ABBREVIATION: self._abbreviation,
        }

    def fit(
        self,
        bbox: BBox,
        text: str,
        style: StyleModel,
        options: OverflowOptions | None = None,
        image_size: Tuple[int, int] | None = None,
    ) -> FittingResult:
        options = options or OverflowOptions()
        enabled = {
            ReplacementStrategy.PRESERVE_BOUNDS: True,
            ReplacementStrategy.ADAPTIVE_SCALING: True,
            ReplacementStrategy.MULTI_LINE_WRAP: options.allow_line_breaking,
            ReplacementStrategy.OVERFLOW_EXPAND: options.expand_bounds,
            ReplacementStrategy.ABBREVIATION: options.allow_abbreviation,
        }

        fallback: FittingResult | None = None
        for strategy in ReplacementStrategy:
            if not enabled[strategy]:
                continue
            result = self._strategies[strategy](bbox, text, style, options, image_size)
            if result is None:
                continue
            if result.success:
                logger.debug(
                    "Fitted %r with %s at scale %.2f", text, strategy.value, result.scale_factor
                )
                return result
            if strategy == ReplacementStrategy.ADAPTIVE_SCALING:
                fallback = result

        logger.warning("No strategy fits %r in %s, using best effort", text, bbox.as_tuple())
        return fallback or self._best_effort(bbox, text, style, options, image_size)

    # ---------- Estrategias ----------

    def _preserve_bounds(self, bbox, text, style, options, image_size) -> FittingResult | None:
        return self._search(ReplacementStrategy.PRESERVE_BOUNDS, bbox, text, style, options)

    def _adaptive_scaling(self, bbox, text, style, options, image_size) -> FittingResult:
        bounds = self._expand(bbox, options.max_expansion / 4, image_size)
        found = self._search(ReplacementStrategy.ADAPTIVE_SCALING, bounds, text, style, options)
        if found is not None:
            return found
        return self._best_effort(bbox, text, style, options, image_size)

    def _multi_line_wrap(self, bbox, text, style, options, image_size) -> FittingResult | None:
        return self._search(
            ReplacementStrategy.MULTI_LINE_WRAP, bbox, text, style, options, wrap=True
        )

    def _overflow_expand(self, bbox, text, style, options, image_size) -> FittingResult | None:
        bounds = self._expand(bbox, options.max_expansion, image_size)
        return self._search(
            ReplacementStrategy.OVERFLOW_EXPAND,
            bounds,
            text,
            style,
            options,
            wrap=options.allow_line_breaking,
        )

    def _abbreviation(self, bbox, text, style, options, image_size) -> FittingResult | None:
        shortened = remove_stop_words(text)
        for candidate in [shortened] + truncation_candidates(shortened):
            if candidate == text:
                continue
            found = self._search(ReplacementStrategy.ABBREVIATION, bbox, candidate, style, options)
            if found is not None:
                return FittingResult(
                    strategy=found.strategy,
                    success=True,
                    scale_factor=found.scale_factor,
                    font_size=found.font_size,
                    final_text=found.final_text,
                    layout=found.layout,
                    bounds=found.bounds,
                    confidence=found.confidence * ABBREVIATION_PENALTY,
                )
        return None

    # ---------- Núcleo ----------

    def layout_text(
        self, text: str, style: StyleModel, size: float, wrap_width: float | None = None
    ) -> TextLayout:
        """Layout del texto a un tamaño dado; `\\n` siempre parte línea."""
        font = self.fonts.resolve(style.typography, size).font
        if wrap_width is not None:
            lines = self.layout.wrap_text(text, wrap_width, font)
        else:
            lines = text.split("\n")
        return self.layout.layout_lines(lines, font, size, line_height=LINE_HEIGHT_FACTOR)

    def _search(
        self,
        strategy: ReplacementStrategy,
        bounds: BBox,
        text: str,
        style: StyleModel,
        options: OverflowOptions,
        wrap: bool = False,
    ) -> FittingResult | None:
        """
        Búsqueda binaria de la mayor escala en [max_scale_down, max_scale_up]
        cuyo layout cabe en `bounds`. Devuelve None si ni la menor escala cabe.
        """
        base_size = style.typography.size
        wrap_width = float(bounds.width) if wrap else None
        lo, hi = options.max_scale_down, options.max_scale_up
        best: Tuple[float, TextLayout] | None = None

        for _ in range(SEARCH_ITERATIONS):
            mid = (lo + hi) / 2
            layout = self.layout_text(text, style, base_size * mid, wrap_width)
            if layout.fits(bounds.width, bounds.height):
                best = (mid, layout)
                lo = mid
            else:
                hi = mid

        if best is None:
            floor = options.max_scale_down
            layout = self.layout_text(text, style, base_size * floor, wrap_width)
            if not layout.fits(bounds.width, bounds.height):
                return None
            best = (floor, layout)

        scale, layout = best
        return FittingResult(
            strategy=strategy,
            success=True,
            scale_factor=scale,
            font_size=base_size * scale,
            final_text=layout.text,
            layout=layout,
            bounds=bounds,
            confidence=self.confidence(scale, layout, bounds),
        )

    def _best_effort(self, bbox, text, style, options, image_size) -> FittingResult:
        """Intento de adaptive_scaling a la escala mínima, marcado como fallido."""
        bounds = self._expand(bbox, options.max_expansion / 4, image_size)
        scale = options.max_scale_down
        layout = self.layout_text(text, style, style.typography.size * scale)
        return FittingResult(
            strategy=ReplacementStrategy.ADAPTIVE_SCALING,
            success=False,
            scale_factor=scale,
            font_size=style.typography.size * scale,
            final_text=layout.text,
            layout=layout,
            bounds=bounds,
            confidence=self.confidence(scale, layout, bounds),
        )

    @staticmethod
    def _expand(bbox: BBox, per_side: float, image_size: Tuple[int, int] | None) -> BBox:
        expanded = bbox.expanded(per_side, per_side)
        if image_size is None:
            return expanded
        return expanded.clamped(*image_size)

    @staticmethod
    def confidence(scale: float, layout: TextLayout, bounds: BBox) -> float:
        confidence = 0.8 - abs(1 - scale) * 0.3
        width_use = layout.total_width / bounds.width
        height_use = layout.total_height / bounds.height
        if 0.7 < width_use < 0.95:
            confidence += 0.1
        if 0.7 < height_use < 0.95:
            confidence += 0.1
        return min(1.0, max(0.0, confidence))
