from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.style import StyleModel


class BBox(BaseModel):
    """
    Bounding box en píxeles: (x0, y0) esquina superior izquierda, (x1, y1)
    esquina inferior derecha (exclusiva). Inmutable una vez creado.
    """

    x0: int
    y0: int
    x1: int
    y1: int

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "BBox":
        if self.x1 <= self.x0 or self.y1 <= self.y0:
            raise ValueError(f"Degenerate bbox: {self.as_tuple()}")
        return self

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x0 + self.x1) / 2, (self.y0 + self.y1) / 2

    def as_tuple(self) -> tuple[int, int, int, int]:
        return self.x0, self.y0, self.x1, self.y1

    def expanded(self, dx: float, dy: float) -> "BBox":
        """Devuelve una caja crecida `dx`/`dy` píxeles por cada lado."""
        return BBox(
            x0=int(round(self.x0 - dx)),
            y0=int(round(self.y0 - dy)),
            x1=int(round(self.x1 + dx)),
            y1=int(round(self.y1 + dy)),
        )

    def clamped(self, width: int, height: int) -> "BBox":
        """
        Recorta la caja a los límites de una imagen width×height sin dejarla
        degenerada (mínimo 1px en cada eje).
        """
        x0 = max(0, min(self.x0, width - 1))
        y0 = max(0, min(self.y0, height - 1))
        x1 = max(x0 + 1, min(self.x1, width))
        y1 = max(y0 + 1, min(self.y1, height))
        return BBox(x0=x0, y0=y0, x1=x1, y1=y1)

    @classmethod
    def union(cls, boxes: list["BBox"]) -> "BBox":
        return cls(
            x0=min(b.x0 for b in boxes),
            y0=min(b.y0 for b in boxes),
            x1=max(b.x1 for b in boxes),
            y1=max(b.y1 for b in boxes),
        )


class OcrWord(BaseModel):
    """Palabra tal cual la devuelve el motor de OCR (confianza 0–100)."""

    text: str
    bbox: BBox
    confidence: float = Field(ge=0.0, le=100.0)


class TextRegion(BaseModel):
    """
    Bloque de texto detectado (palabras ya agrupadas). El analizador de estilo
    añade `style` y el traductor `translated_text`; ambos devuelven copias.
    """

    id: str
    text: str
    bbox: BBox
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    translated_text: str | None = None
    style: StyleModel | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_translation(self) -> bool:
        return bool(self.translated_text and self.translated_text.strip())
