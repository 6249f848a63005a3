from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from app.core.enums import TextAlignment

FontLike = ImageFont.FreeTypeFont | ImageFont.ImageFont

LINE_HEIGHT_FACTOR = 1.2


@dataclass(frozen=True)
class TextWord:
    text: str
    width: float
    height: float
    x: float
    y: float


@dataclass(frozen=True)
class TextLine:
    text: str
    width: float
    height: float
    x: float
    y: float  # borde superior de la línea dentro del bloque
    words: Tuple[TextWord, ...] = ()


@dataclass(frozen=True)
class TextLayout:
    lines: Tuple[TextLine, ...]
    total_width: float
    total_height: float
    line_height: float
    baseline: float  # distancia desde el borde superior de cada línea a su línea base

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)

    def fits(self, width: float, height: float) -> bool:
        """Cabe si el ancho y el alto (líneas × alto de línea) no superan la caja."""
        return self.total_width <= width and self.total_height <= height

    @classmethod
    def empty(cls) -> "TextLayout":
        return cls(lines=(), total_width=0.0, total_height=0.0, line_height=0.0, baseline=0.0)


class LayoutService:
    """Mide, parte en líneas y posiciona texto con una fuente dada."""

    def __init__(self) -> None:
        # Canvas mínimo para medir texto sin coste de crear imágenes en cada llamada.
        # Sólo se usa para medir: nunca se dibuja en él.
        self._measure_img = Image.new("RGB", (1, 1))
        self._draw = ImageDraw.Draw(self._measure_img)

    def line_width(self, text: str, font: FontLike) -> float:
        if not text:
            return 0.0
        bbox = self._draw.textbbox((0, 0), text, font=font)
        return float(bbox[2] - bbox[0])

    def ascent(self, font: FontLike, size: float) -> float:
        getmetrics = getattr(font, "getmetrics", None)
        if getmetrics is None:
            return size * 0.8
        return float(getmetrics()[0])

    def wrap_text(self, text: str, max_width_px: float, font: FontLike) -> List[str]:
        """
        Divide el texto en líneas que no excedan max_width_px (greedy por
        palabras). Mantiene saltos de línea explícitos. Una palabra más ancha
        que la caja queda sola en su línea.
        """

        if not text:
            return []

        lines: List[str] = []
        paragraphs = text.splitlines() or [text]

        for paragraph in paragraphs:
            words = paragraph.split()
            if not words:
                lines.append("")
                continue

            current_line = words[0]
            for word in words[1:]:
                test_line = f"{current_line} {word}"
                if self.line_width(test_line, font) <= max_width_px:
                    current_line = test_line
                else:
                    lines.append(current_line)
                    current_line = word
            lines.append(current_line)

        return lines

    def measure_text(
        self,
        lines: Sequence[str],
        font: FontLike,
        font_size: float,
        line_height: float = LINE_HEIGHT_FACTOR,
    ) -> Tuple[float, float]:
        if not lines:
            return 0.0, 0.0

        max_w = max(self.line_width(line, font) for line in lines)
        total_h = font_size * line_height * len(lines)
        return max_w, total_h

    def layout_lines(
        self,
        lines: Sequence[str],
        font: FontLike,
        font_size: float,
        box_width: float | None = None,
        alignment: TextAlignment = TextAlignment.LEFT,
        line_height: float = LINE_HEIGHT_FACTOR,
    ) -> TextLayout:
        """
        Posiciona líneas ya partidas. Sin `box_width` todas empiezan en x=0;
        con él se aplica la alineación (justify reparte el hueco entre palabras
        salvo en la última línea).
        """
        if not lines:
            return TextLayout.empty()

        line_height_px = font_size * line_height
        space_w = self.line_width("a a", font) - self.line_width("aa", font)
        text_lines: List[TextLine] = []
        total_width = 0.0

        for index, line_text in enumerate(lines):
            width = self.line_width(line_text, font)
            y = index * line_height_px
            x = 0.0
            if box_width is not None:
                if alignment == TextAlignment.CENTER:
                    x = (box_width - width) / 2
                elif alignment == TextAlignment.RIGHT:
                    x = box_width - width

            word_texts = line_text.split()
            gap = space_w
            is_last = index == len(lines) - 1
            if (
                box_width is not None
                and alignment == TextAlignment.JUSTIFY
                and not is_last
                and len(word_texts) > 1
            ):
                words_w = sum(self.line_width(w, font) for w in word_texts)
                gap = max(space_w, (box_width - words_w) / (len(word_texts) - 1))
                width = words_w + gap * (len(word_texts) - 1)

            words: List[TextWord] = []
            cursor = x
            for word in word_texts:
                word_w = self.line_width(word, font)
                words.append(TextWord(text=word, width=word_w, height=font_size, x=cursor, y=y))
                cursor += word_w + gap

            text_lines.append(
                TextLine(
                    text=line_text,
                    width=width,
                    height=line_height_px,
                    x=x,
                    y=y,
                    words=tuple(words),
                )
            )
            total_width = max(total_width, width)

        return TextLayout(
            lines=tuple(text_lines),
            total_width=total_width,
            total_height=line_height_px * len(text_lines),
            line_height=line_height_px,
            baseline=self.ascent(font, font_size),
        )
