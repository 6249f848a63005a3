"""Resolución de fuentes TrueType y clasificación aproximada de la tipografía.

La disponibilidad de cada familia se calcula una sola vez por proceso
(`lru_cache`): es el único estado global del filtro y sólo se lee después de
la primera consulta, por lo que se puede compartir sin invalidarlo.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from app.core.config import get_settings
from app.core.enums import FontCategory, FontStyle, FontWeight
from app.models.style import Typography

logger = logging.getLogger(__name__)

FontLike = ImageFont.FreeTypeFont | ImageFont.ImageFont

# Cadena fija de respaldo cuando la familia estimada no está instalada
FALLBACK_FAMILIES = [
    "Arial",
    "Helvetica",
    "Times New Roman",
    "Georgia",
    "Verdana",
    "sans-serif",
    "serif",
]

# Familia -> variante -> nombres de fichero candidatos. Pillow busca cada nombre
# en los directorios de fuentes del sistema; Liberation/DejaVu sustituyen a las
# fuentes web cuando éstas no están.
FONT_FILES: dict[str, dict[str, list[str]]] = {
    "arial": {
        "regular": ["arial.ttf", "Arial.ttf", "LiberationSans-Regular.ttf"],
        "bold": ["arialbd.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf"],
        "italic": ["ariali.ttf", "Arial Italic.ttf", "LiberationSans-Italic.ttf"],
        "bold_italic": ["arialbi.ttf", "Arial Bold Italic.ttf", "LiberationSans-BoldItalic.ttf"],
    },
    "helvetica": {
        "regular": ["Helvetica.ttc", "LiberationSans-Regular.ttf"],
        "bold": ["Helvetica-Bold.ttf", "LiberationSans-Bold.ttf"],
        "italic": ["Helvetica-Oblique.ttf", "LiberationSans-Italic.ttf"],
        "bold_italic": ["Helvetica-BoldOblique.ttf", "LiberationSans-BoldItalic.ttf"],
    },
    "times new roman": {
        "regular": ["times.ttf", "Times New Roman.ttf", "LiberationSerif-Regular.ttf"],
        "bold": ["timesbd.ttf", "Times New Roman Bold.ttf", "LiberationSerif-Bold.ttf"],
        "italic": ["timesi.ttf", "Times New Roman Italic.ttf", "LiberationSerif-Italic.ttf"],
        "bold_italic": ["timesbi.ttf", "LiberationSerif-BoldItalic.ttf"],
    },
    "georgia": {
        "regular": ["georgia.ttf", "Georgia.ttf", "DejaVuSerif.ttf"],
        "bold": ["georgiab.ttf", "Georgia Bold.ttf", "DejaVuSerif-Bold.ttf"],
        "italic": ["georgiai.ttf", "Georgia Italic.ttf", "DejaVuSerif-Italic.ttf"],
        "bold_italic": ["georgiaz.ttf", "DejaVuSerif-BoldItalic.ttf"],
    },
    "verdana": {
        "regular": ["verdana.ttf", "Verdana.ttf", "DejaVuSans.ttf"],
        "bold": ["verdanab.ttf", "Verdana Bold.ttf", "DejaVuSans-Bold.ttf"],
        "italic": ["verdanai.ttf", "Verdana Italic.ttf", "DejaVuSans-Oblique.ttf"],
        "bold_italic": ["verdanaz.ttf", "DejaVuSans-BoldOblique.ttf"],
    },
    "courier new": {
        "regular": ["cour.ttf", "Courier New.ttf", "LiberationMono-Regular.ttf", "DejaVuSansMono.ttf"],
        "bold": ["courbd.ttf", "LiberationMono-Bold.ttf", "DejaVuSansMono-Bold.ttf"],
        "italic": ["couri.ttf", "LiberationMono-Italic.ttf", "DejaVuSansMono-Oblique.ttf"],
        "bold_italic": ["courbi.ttf", "LiberationMono-BoldItalic.ttf"],
    },
    "sans-serif": {
        "regular": ["DejaVuSans.ttf", "LiberationSans-Regular.ttf", "FreeSans.ttf"],
        "bold": ["DejaVuSans-Bold.ttf", "LiberationSans-Bold.ttf", "FreeSansBold.ttf"],
        "italic": ["DejaVuSans-Oblique.ttf", "LiberationSans-Italic.ttf", "FreeSansOblique.ttf"],
        "bold_italic": ["DejaVuSans-BoldOblique.ttf", "LiberationSans-BoldItalic.ttf"],
    },
    "serif": {
        "regular": ["DejaVuSerif.ttf", "LiberationSerif-Regular.ttf", "FreeSerif.ttf"],
        "bold": ["DejaVuSerif-Bold.ttf", "LiberationSerif-Bold.ttf", "FreeSerifBold.ttf"],
        "italic": ["DejaVuSerif-Italic.ttf", "LiberationSerif-Italic.ttf", "FreeSerifItalic.ttf"],
        "bold_italic": ["DejaVuSerif-BoldItalic.ttf", "LiberationSerif-BoldItalic.ttf"],
    },
    "monospace": {
        "regular": ["DejaVuSansMono.ttf", "LiberationMono-Regular.ttf", "FreeMono.ttf"],
        "bold": ["DejaVuSansMono-Bold.ttf", "LiberationMono-Bold.ttf"],
        "italic": ["DejaVuSansMono-Oblique.ttf", "LiberationMono-Italic.ttf"],
        "bold_italic": ["DejaVuSansMono-BoldOblique.ttf", "LiberationMono-BoldItalic.ttf"],
    },
}

CATEGORY_FAMILIES = {
    FontCategory.SANS_SERIF: "Arial",
    FontCategory.SERIF: "Times New Roman",
    FontCategory.MONOSPACE: "Courier New",
}

MONOSPACE_FAMILIES = {"monospace", "courier new"}

PROBE_TEXT = "mmmmmmmmmmlli"
PROBE_SIZE = 72


@dataclass(frozen=True)
class ResolvedFont:
    """Fuente lista para dibujar: familia efectiva, fichero y tamaño."""

    family: str
    path: str | None  # None -> fuente por defecto de Pillow
    size: int
    weight: FontWeight = FontWeight.NORMAL
    style: FontStyle = FontStyle.NORMAL
    font: FontLike = field(default=None, compare=False, repr=False)  # type: ignore[assignment]


def _variant_key(weight: FontWeight, style: FontStyle) -> str:
    bold = weight in (FontWeight.BOLD, FontWeight.MEDIUM)
    italic = style == FontStyle.ITALIC
    if bold and italic:
        return "bold_italic"
    if bold:
        return "bold"
    if italic:
        return "italic"
    return "regular"


def _normalize_family(family: str) -> str:
    # "Arial, sans-serif" -> "arial"
    return family.split(",")[0].strip().strip("'\"").lower()


def _font_dirs() -> list[Path]:
    font_dir = get_settings().font_dir
    return [font_dir] if font_dir else []


@lru_cache(maxsize=512)
def load_truetype(path: str | None, size: int) -> FontLike:
    """Carga (y memoriza) una fuente; `None` usa la fuente por defecto."""
    size = max(1, int(size))
    if path is None:
        return ImageFont.load_default(size=size)
    return ImageFont.truetype(path, size=size)


def _probe_width(font: FontLike) -> float:
    draw = ImageDraw.Draw(Image.new("L", (1, 1)))
    left, _, right, _ = draw.textbbox((0, 0), PROBE_TEXT, font=font)
    return float(right - left)


@lru_cache(maxsize=1)
def _monospace_reference_width() -> float:
    for name in FONT_FILES["monospace"]["regular"]:
        try:
            return _probe_width(ImageFont.truetype(name, size=PROBE_SIZE))
        except OSError:
            continue
    return _probe_width(ImageFont.load_default(size=PROBE_SIZE))


@lru_cache(maxsize=None)
def find_font_file(family: str, variant: str = "regular") -> str | None:
    """
    Devuelve la primera ruta cargable para la familia/variante, o None.

    Una familia se considera disponible si su métrica de prueba difiere de la
    referencia monoespaciada (igual que hace un navegador cuando cae a
    `monospace`). Las familias monoespaciadas quedan exentas de esa prueba.
    """
    key = _normalize_family(family)
    variants = FONT_FILES.get(key)
    if variants is None:
        candidates = [family, f"{family}.ttf"]
    else:
        candidates = variants.get(variant, []) + (
            variants["regular"] if variant != "regular" else []
        )

    reference = _monospace_reference_width()
    for name in candidates:
        for path in [str(d / name) for d in _font_dirs()] + [name]:
            try:
                font = ImageFont.truetype(path, size=PROBE_SIZE)
            except OSError:
                continue
            if key in MONOSPACE_FAMILIES or _probe_width(font) != reference:
                return path
    return None


class FontResolver:
    """Elige la fuente con la que se pinta una región."""

    def __init__(self, fallbacks: list[str] | None = None) -> None:
        self.fallbacks = fallbacks or FALLBACK_FAMILIES

    def candidate_families(self, family: str) -> list[str]:
        """Familia estimada seguida de la cadena de respaldo, sin duplicados."""
        wanted = _normalize_family(family)
        chain = [family] + [f for f in self.fallbacks if _normalize_family(f) != wanted]
        return chain

    def resolve(self, typography: Typography, size: float | None = None) -> ResolvedFont:
        px = max(1, int(round(size if size is not None else typography.size)))
        variant = _variant_key(typography.weight, typography.style)

        for family in self.candidate_families(typography.family):
            path = find_font_file(family, variant)
            if path is None:
                continue
            return ResolvedFont(
                family=family,
                path=path,
                size=px,
                weight=typography.weight,
                style=typography.style,
                font=load_truetype(path, px),
            )

        logger.debug("No TrueType font for %s, using Pillow default", typography.family)
        return ResolvedFont(
            family="default",
            path=None,
            size=px,
            weight=typography.weight,
            style=typography.style,
            font=load_truetype(None, px),
        )

    def font_at(self, resolved: ResolvedFont, size: float) -> ResolvedFont:
        """Misma fuente con otro tamaño (para el reescalado defensivo)."""
        px = max(1, int(round(size)))
        return ResolvedFont(
            family=resolved.family,
            path=resolved.path,
            size=px,
            weight=resolved.weight,
            style=resolved.style,
            font=load_truetype(resolved.path, px),
        )


# ---------- Clasificación de la tipografía a partir de píxeles ----------


def dark_runs(line: np.ndarray) -> list[int]:
    """Longitudes de las rachas de True en un vector booleano."""
    padded = np.concatenate(([False], line, [False]))
    edges = np.flatnonzero(padded[1:] != padded[:-1])
    return list(edges[1::2] - edges[::2])


def classify_font(gray: np.ndarray, dark_threshold: int = 128) -> FontCategory:
    """
    Clasificación barata serif / sans-serif / monoespaciada.

    - Serif: la franja inferior de los glifos (pies) tiene bastante más tinta
      que la franja media.
    - Monoespaciada: los glifos separados por columnas vacías tienen anchos
      casi idénticos.
    - En cualquier otro caso, sans-serif.
    """
    if gray.ndim != 2 or gray.size == 0:
        return FontCategory.SANS_SERIF

    dark = gray < dark_threshold
    rows = np.flatnonzero(dark.any(axis=1))
    if rows.size < 6:
        return FontCategory.SANS_SERIF

    glyphs = dark[rows[0] : rows[-1] + 1]
    h = glyphs.shape[0]
    band = max(1, h // 8)
    foot = glyphs[h - band :].mean()
    middle = glyphs[h // 2 - band // 2 : h // 2 + band // 2 + 1].mean()
    if middle > 0 and foot > middle * 1.6:
        return FontCategory.SERIF

    widths = dark_runs(glyphs.any(axis=0))
    if len(widths) >= 4:
        arr = np.asarray(widths, dtype=np.float64)
        if arr.mean() > 0 and arr.std() / arr.mean() < 0.12:
            return FontCategory.MONOSPACE

    return FontCategory.SANS_SERIF


def family_for(category: FontCategory) -> str:
    return CATEGORY_FAMILIES.get(category, "Arial")
