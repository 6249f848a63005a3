"""Descripción visual de una región de texto (color, tipografía, layout, efectos).

Es un valor derivado: se recalcula por región y nunca se muta, por eso todos
los modelos son `frozen`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import (
    ColorScheme,
    FontStyle,
    FontWeight,
    TextAlignment,
    TextDecoration,
)

RGB = tuple[int, int, int]


class ColorStyle(BaseModel):
    dominant: RGB = (255, 255, 255)
    text: RGB = (0, 0, 0)
    background: RGB = (255, 255, 255)
    contrast: float = Field(default=21.0, ge=1.0)
    scheme: ColorScheme = ColorScheme.LIGHT

    model_config = ConfigDict(frozen=True)


class Typography(BaseModel):
    family: str = "Arial"
    size: float = Field(default=16.0, gt=0)
    weight: FontWeight = FontWeight.NORMAL
    style: FontStyle = FontStyle.NORMAL
    letter_spacing: float = 0.0
    line_height: float = 19.2
    decoration: TextDecoration = TextDecoration.NONE

    model_config = ConfigDict(frozen=True)


class Margins(BaseModel):
    top: int = 0
    right: int = 0
    bottom: int = 0
    left: int = 0

    model_config = ConfigDict(frozen=True)


class LayoutStyle(BaseModel):
    alignment: TextAlignment = TextAlignment.LEFT
    rotation: float = 0.0
    baseline: float = 0.0  # coordenada y absoluta en la imagen
    margins: Margins = Margins()

    model_config = ConfigDict(frozen=True)


class ShadowEffect(BaseModel):
    offset: tuple[int, int] = (2, 2)
    blur: float = 4.0
    color: RGB = (0, 0, 0)

    model_config = ConfigDict(frozen=True)


class OutlineEffect(BaseModel):
    width: int = 1
    color: RGB = (255, 255, 255)

    model_config = ConfigDict(frozen=True)


class GradientEffect(BaseModel):
    colors: list[RGB] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Effects(BaseModel):
    shadow: ShadowEffect | None = None
    outline: OutlineEffect | None = None
    gradient: GradientEffect | None = None
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)


class StyleModel(BaseModel):
    color: ColorStyle = ColorStyle()
    typography: Typography = Typography()
    layout: LayoutStyle = LayoutStyle()
    effects: Effects = Effects()
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def default(cls, font_size: float = 16.0, baseline: float = 0.0) -> "StyleModel":
        """Estilo neutro usado cuando el análisis no puede completarse."""
        return cls(
            typography=Typography(size=font_size, line_height=font_size * 1.2),
            layout=LayoutStyle(baseline=baseline),
        )

    def with_font_size(self, size: float) -> "StyleModel":
        """Copia con otro tamaño de fuente (el resto del estilo se conserva)."""
        typography = self.typography.model_copy(update={"size": size})
        return self.model_copy(update={"typography": typography})
