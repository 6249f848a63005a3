"""Enumeraciones compartidas: estilos, estrategias y etapas del filtro."""

from enum import Enum


class ColorScheme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    MIXED = "mixed"


class FontWeight(str, Enum):
    LIGHT = "light"
    NORMAL = "normal"
    MEDIUM = "medium"
    BOLD = "bold"


class FontStyle(str, Enum):
    NORMAL = "normal"
    ITALIC = "italic"


class TextDecoration(str, Enum):
    NONE = "none"
    UNDERLINE = "underline"
    OVERLINE = "overline"
    LINE_THROUGH = "line-through"


class TextAlignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "justify"


class FontCategory(str, Enum):
    """Familias genéricas que sabemos aproximar."""

    SERIF = "serif"
    SANS_SERIF = "sans-serif"
    MONOSPACE = "monospace"


class TexturePattern(str, Enum):
    """Tipo de fondo detectado alrededor de una región de texto."""

    SOLID = "solid"
    GRADIENT = "gradient"
    TEXTURE = "texture"
    COMPLEX = "complex"


class ReconstructionMethod(str, Enum):
    """Métodos de relleno. `CONTENT_AWARE_FILL` significa selección automática."""

    CONTENT_AWARE_FILL = "content_aware_fill"
    PATCH_MATCH = "patch_match"
    TEXTURE_SYNTHESIS = "texture_synthesis"
    EDGE_PRESERVING_SMOOTHING = "edge_preserving_smoothing"
    INPAINTING = "inpainting"


class ReplacementStrategy(str, Enum):
    """Estrategias de ajuste, en el orden en que se prueban."""

    PRESERVE_BOUNDS = "preserve_bounds"
    ADAPTIVE_SCALING = "adaptive_scaling"
    MULTI_LINE_WRAP = "multi_line_wrap"
    OVERFLOW_EXPAND = "overflow_expand"
    ABBREVIATION = "abbreviation"


class QualityLevel(str, Enum):
    FAST = "fast"
    BALANCED = "balanced"
    HIGH_QUALITY = "high_quality"
    ULTRA = "ultra"


class ProcessingStage(str, Enum):
    """Etapas secuenciales del pipeline (sin vuelta atrás)."""

    LOADING = "loading"
    OCR_ANALYSIS = "ocr_analysis"
    STYLE_ANALYSIS = "style_analysis"
    TRANSLATION = "translation"
    TEXT_RENDERING = "text_rendering"
    FINALIZATION = "finalization"
    COMPLETE = "complete"


class JobStatus(str, Enum):
    """Estados posibles de un trabajo de filtrado en segundo plano."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ImageKind(str, Enum):
    """Rasters que puede descargar el cliente al terminar un job."""

    ORIGINAL = "original"
    TRANSLATED = "translated"
    PREVIEW = "preview"
