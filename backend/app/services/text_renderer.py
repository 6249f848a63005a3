"""Rasteriza texto ya ajustado con el estilo estimado de la región.

Cada llamada pinta en una superficie RGBA transparente nueva del tamaño
objetivo. El orden de capas es sombra, relleno (con contorno vía
`stroke_width`) y decoraciones; la opacidad global se aplica al final.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, ImageDraw, ImageFilter

from app.core.enums import QualityLevel, TextAlignment, TextDecoration
from app.models.options import RenderingOptions
from app.models.style import StyleModel
from app.services.font_service import FontResolver, ResolvedFont
from app.services.layout_service import LayoutService, TextLayout

logger = logging.getLogger(__name__)

MAX_RESCALE_ATTEMPTS = 3


def neutral_style(style: StyleModel) -> StyleModel:
    """Conserva tipografía y layout pero vuelve a los colores y efectos por defecto."""
    neutral = StyleModel.default()
    return style.model_copy(update={"color": neutral.color, "effects": neutral.effects})


@dataclass
class RenderingResult:
    image: Image.Image
    layout: TextLayout
    success: bool
    scale_applied: float = 1.0
    font: ResolvedFont | None = None
    processing_time: float = 0.0
    error: str | None = None


class TextRenderer:
    def __init__(
        self,
        font_resolver: FontResolver | None = None,
        layout_service: LayoutService | None = None,
    ) -> None:
        self.fonts = font_resolver or FontResolver()
        self.layout = layout_service or LayoutService()

    def render(
        self,
        text: str,
        style: StyleModel,
        target_size: Tuple[int, int],
        options: RenderingOptions | None = None,
    ) -> RenderingResult:
        options = options or RenderingOptions()
        start = time.perf_counter()
        width, height = max(1, target_size[0]), max(1, target_size[1])
        if not options.preserve_original_style:
            style = neutral_style(style)

        try:
            font, layout, scale = self._fit_layout(text, style, width, height, options)
            surface = Image.new("RGBA", (width, height), (0, 0, 0, 0))
            offset_y = max(0.0, (height - layout.total_height) / 2)
            justify = style.layout.alignment == TextAlignment.JUSTIFY

            shadow = style.effects.shadow
            if shadow is not None:
                layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
                self._draw_lines(
                    layer, layout, font, shadow.color, offset_y,
                    dx=shadow.offset[0], dy=shadow.offset[1], options=options,
                    justify=justify,
                )
                if shadow.blur > 0:
                    layer = layer.filter(ImageFilter.GaussianBlur(shadow.blur))
                surface.alpha_composite(layer)

            glyphs = Image.new("RGBA", (width, height), (0, 0, 0, 0))
            outline = style.effects.outline
            self._draw_lines(
                glyphs, layout, font, style.color.text, offset_y,
                stroke_width=outline.width if outline else 0,
                stroke_fill=outline.color if outline else None,
                options=options,
                justify=justify,
            )
            gradient = style.effects.gradient
            if gradient is not None and len(gradient.colors) >= 2:
                glyphs = self._apply_gradient(glyphs, gradient.colors)
            surface.alpha_composite(glyphs)

            self._draw_decoration(surface, layout, font, style, offset_y)

            opacity = style.effects.opacity
            if opacity < 1.0:
                alpha = surface.getchannel("A").point(lambda a: int(round(a * opacity)))
                surface.putalpha(alpha)
        except Exception as exc:
            logger.exception("Rendering failed for %r", text)
            return RenderingResult(
                image=Image.new("RGBA", (width, height), (0, 0, 0, 0)),
                layout=TextLayout.empty(),
                success=False,
                processing_time=time.perf_counter() - start,
                error=str(exc),
            )

        return RenderingResult(
            image=surface,
            layout=layout,
            success=True,
            scale_applied=scale,
            font=font,
            processing_time=time.perf_counter() - start,
        )

    # ---------- Layout ----------

    def _fit_layout(
        self,
        text: str,
        style: StyleModel,
        width: int,
        height: int,
        options: RenderingOptions,
    ) -> Tuple[ResolvedFont, TextLayout, float]:
        typography = style.typography
        font = self.fonts.resolve(typography)
        lines = self.layout.wrap_text(text, width, font.font)
        layout = self._layout(lines, font, width, style)
        scale = 1.0

        if not options.adaptive_scaling:
            return font, layout, scale

        # Reescalado defensivo: el tamaño entero de la fuente puede desbordar
        for _ in range(MAX_RESCALE_ATTEMPTS):
            if layout.fits(width, height) or font.size <= 1:
                break
            factor = min(
                width / layout.total_width if layout.total_width else 1.0,
                height / layout.total_height if layout.total_height else 1.0,
            )
            scale *= factor
            font = self.fonts.font_at(font, max(1.0, min(font.size - 1, font.size * factor)))
            layout = self._layout(lines, font, width, style)
            logger.debug("Rescaled %r to %dpx to fit %dx%d", text, font.size, width, height)

        return font, layout, scale

    def _layout(self, lines, font: ResolvedFont, width: int, style: StyleModel) -> TextLayout:
        return self.layout.layout_lines(
            lines,
            font.font,
            font.size,
            box_width=width,
            alignment=style.layout.alignment,
        )

    # ---------- Dibujo ----------

    def _draw_lines(
        self,
        layer: Image.Image,
        layout: TextLayout,
        font: ResolvedFont,
        color,
        offset_y: float,
        dx: float = 0,
        dy: float = 0,
        stroke_width: int = 0,
        stroke_fill=None,
        options: RenderingOptions | None = None,
        justify: bool = False,
    ) -> None:
        draw = ImageDraw.Draw(layer)
        if options is not None and (
            not options.antialiasing or options.quality_level == QualityLevel.FAST
        ):
            draw.fontmode = "1"
        fill = tuple(color) + (255,)
        stroke = tuple(stroke_fill) + (255,) if stroke_fill is not None else None

        for line in layout.lines:
            y = offset_y + line.y + dy
            if justify and len(line.words) > 1:
                for word in line.words:
                    draw.text(
                        (word.x + dx, y), word.text, font=font.font, fill=fill,
                        stroke_width=stroke_width, stroke_fill=stroke,
                    )
                continue
            draw.text(
                (line.x + dx, y), line.text, font=font.font, fill=fill,
                stroke_width=stroke_width, stroke_fill=stroke,
            )

    def _draw_decoration(
        self,
        surface: Image.Image,
        layout: TextLayout,
        font: ResolvedFont,
        style: StyleModel,
        offset_y: float,
    ) -> None:
        decoration = style.typography.decoration
        if decoration == TextDecoration.NONE:
            return

        size = float(font.size)
        shift = {
            TextDecoration.UNDERLINE: 0.1 * size,
            TextDecoration.OVERLINE: -0.8 * size,
            TextDecoration.LINE_THROUGH: -0.3 * size,
        }[decoration]
        line_width = max(1, int(round(size / 16)))
        fill = tuple(style.color.text) + (255,)
        draw = ImageDraw.Draw(surface)

        for line in layout.lines:
            baseline = offset_y + line.y + layout.baseline
            y = baseline + shift
            draw.line((line.x, y, line.x + line.width, y), fill=fill, width=line_width)

    @staticmethod
    def _apply_gradient(glyphs: Image.Image, colors) -> Image.Image:
        """Degradado vertical entre el primer y el último color, recortado a los glifos."""
        width, height = glyphs.size
        top, bottom = colors[0], colors[-1]
        column = Image.new("RGB", (1, height))
        for y in range(height):
            t = y / max(1, height - 1)
            column.putpixel(
                (0, y), tuple(int(round(a + (b - a) * t)) for a, b in zip(top, bottom))
            )
        painted = column.resize((width, height)).convert("RGBA")
        painted.putalpha(glyphs.getchannel("A"))
        return painted
