"""Borra el texto original rellenando su zona con fondo plausible.

Pasos: máscara (cajas acolchadas + desenfoque), análisis de la textura que
rodea cada caja, elección del método de relleno y composición final a través
de la máscara suave. Sólo se rellenan píxeles enmascarados; el resto de la
imagen sale intacto.
"""

from __future__ import annotations

import logging
import math
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFilter

from app.core.enums import QualityLevel, ReconstructionMethod, TexturePattern
from app.models.options import ReconstructionOptions
from app.models.text import BBox, TextRegion
from app.services.style_analyzer import luminance

logger = logging.getLogger(__name__)

MASK_BLUR_RADIUS = 2
COLOR_SIGMA = 50.0
PERIODICITY_SAMPLES = 256

_NEIGHBOURS: Tuple[Tuple[int, int], ...] = tuple(
    (dy, dx) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if (dy, dx) != (0, 0)
)

_PATTERN_ORDER = [
    TexturePattern.SOLID,
    TexturePattern.GRADIENT,
    TexturePattern.TEXTURE,
    TexturePattern.COMPLEX,
]

_PATTERN_BONUS = {
    TexturePattern.SOLID: 0.4,
    TexturePattern.GRADIENT: 0.3,
    TexturePattern.TEXTURE: 0.1,
    TexturePattern.COMPLEX: -0.1,
}

_AUTO_METHOD = {
    TexturePattern.SOLID: ReconstructionMethod.EDGE_PRESERVING_SMOOTHING,
    TexturePattern.GRADIENT: ReconstructionMethod.INPAINTING,
    TexturePattern.TEXTURE: ReconstructionMethod.TEXTURE_SYNTHESIS,
    TexturePattern.COMPLEX: ReconstructionMethod.PATCH_MATCH,
}


@dataclass(frozen=True)
class TextureAnalysis:
    pattern: TexturePattern
    direction: float  # grados
    scale: float
    roughness: float
    periodicity: float


@dataclass
class ReconstructionResult:
    image: Image.Image
    mask: Image.Image
    method: ReconstructionMethod
    confidence: float
    success: bool
    processing_time: float
    texture: TextureAnalysis | None = None
    error: str | None = None


# ---------- Relleno ----------


def _neighbour_sums(values: np.ndarray, known: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Suma y número de vecinos conocidos (8-conectividad) de cada píxel."""
    h, w = known.shape
    weights = known.astype(np.float64)
    padded_values = np.pad(values * weights[..., None], ((1, 1), (1, 1), (0, 0)))
    padded_weights = np.pad(weights, 1)

    total = np.zeros_like(values)
    count = np.zeros_like(weights)
    for dy, dx in _NEIGHBOURS:
        total += padded_values[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w]
        count += padded_weights[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w]
    return total, count


def neighbour_average_fill(
    pixels: np.ndarray, unknown: np.ndarray, options: ReconstructionOptions
) -> np.ndarray:
    """
    Rellena de fuera hacia dentro: en cada pasada los píxeles desconocidos con
    algún vecino conocido toman la media de éstos y pasan a ser conocidos.
    Tras agotar la máscara, las pasadas restantes hasta `iterations` suavizan
    la zona rellenada.
    """
    data = pixels.copy()
    pending = unknown.copy()
    sweeps = 0

    while pending.any():
        total, count = _neighbour_sums(data, ~pending)
        frontier = pending & (count > 0)
        if not frontier.any():
            logger.warning("No known pixels around mask, %d pixels left unfilled", int(pending.sum()))
            break
        data[frontier] = total[frontier] / count[frontier][:, None]
        pending &= ~frontier
        sweeps += 1

    known_all = np.ones(unknown.shape, dtype=bool)
    for _ in range(max(0, options.iterations - sweeps)):
        total, count = _neighbour_sums(data, known_all)
        smooth = unknown & ~pending
        data[smooth] = total[smooth] / count[smooth][:, None]

    return data


def bilateral_fill(
    pixels: np.ndarray, unknown: np.ndarray, options: ReconstructionOptions
) -> np.ndarray:
    """
    Relleno por frentes con pesos bilaterales: distancia espacial (sigma =
    radio de mezcla) y diferencia de color respecto a la media de los vecinos
    conocidos (sigma = 50).
    """
    data = pixels.copy()
    pending = unknown.copy()
    radius = max(1, options.blending_radius)
    sigma_s = float(radius)
    h, w = unknown.shape
    pad = ((radius, radius), (radius, radius), (0, 0))

    while pending.any():
        known = ~pending
        total, count = _neighbour_sums(data, known)
        frontier = pending & (count > 0)
        if not frontier.any():
            logger.warning("No known pixels around mask, %d pixels left unfilled", int(pending.sum()))
            break
        reference = np.zeros_like(data)
        reference[frontier] = total[frontier] / count[frontier][:, None]

        padded_values = np.pad(data, pad)
        padded_known = np.pad(known.astype(np.float64), radius)
        acc = np.zeros_like(data)
        acc_w = np.zeros(unknown.shape, dtype=np.float64)

        for dy in range(-radius, radius + 1):
            for dx in range(-radius, radius + 1):
                if dy == 0 and dx == 0:
                    continue
                spatial = math.exp(-(dy * dy + dx * dx) / (2 * sigma_s * sigma_s))
                neighbour = padded_values[radius + dy : radius + dy + h, radius + dx : radius + dx + w]
                valid = padded_known[radius + dy : radius + dy + h, radius + dx : radius + dx + w]
                diff = np.sum((neighbour - reference) ** 2, axis=-1)
                weight = spatial * np.exp(-diff / (2 * COLOR_SIGMA * COLOR_SIGMA)) * valid
                acc += neighbour * weight[..., None]
                acc_w += weight

        filled = np.where(
            (acc_w > 1e-12)[..., None], acc / np.maximum(acc_w, 1e-12)[..., None], reference
        )
        data[frontier] = filled[frontier]
        pending &= ~frontier

    return data


FillFunction = Callable[[np.ndarray, np.ndarray, ReconstructionOptions], np.ndarray]

# Tabla cerrada método -> relleno. Los métodos sin algoritmo propio comparten
# el relleno por media de vecinos.
FILLERS: Dict[ReconstructionMethod, FillFunction] = {
    ReconstructionMethod.CONTENT_AWARE_FILL: neighbour_average_fill,
    ReconstructionMethod.PATCH_MATCH: neighbour_average_fill,
    ReconstructionMethod.TEXTURE_SYNTHESIS: neighbour_average_fill,
    ReconstructionMethod.INPAINTING: neighbour_average_fill,
    ReconstructionMethod.EDGE_PRESERVING_SMOOTHING: bilateral_fill,
}


def filler_for(method: ReconstructionMethod, options: ReconstructionOptions) -> FillFunction:
    filler = FILLERS[method]
    if filler is bilateral_fill and not options.preserve_edges:
        return neighbour_average_fill
    return filler


def tune_for_quality(options: ReconstructionOptions) -> ReconstructionOptions:
    """
    FAST se salta el muestreo de textura y las pasadas de suavizado;
    HIGH_QUALITY y ULTRA duplican las pasadas.
    """
    if options.quality == QualityLevel.FAST:
        return options.model_copy(update={"texture_analysis": False, "iterations": 1})
    if options.quality in (QualityLevel.HIGH_QUALITY, QualityLevel.ULTRA):
        return options.model_copy(update={"iterations": options.iterations * 2})
    return options


# ---------- Textura ----------


def analyze_patch(gray: np.ndarray, rng: np.random.Generator) -> TextureAnalysis:
    variance = float(gray.var())
    gx = np.zeros_like(gray)
    gy = np.zeros_like(gray)
    gx[:, 1:-1] = (gray[:, 2:] - gray[:, :-2]) / 2
    gy[1:-1, :] = (gray[2:, :] - gray[:-2, :]) / 2
    magnitude = np.hypot(gx, gy)
    edge_density = float((magnitude > 20).mean())

    if variance < 100:
        pattern = TexturePattern.SOLID
    elif edge_density < 0.1:
        pattern = TexturePattern.GRADIENT
    elif edge_density < 0.3:
        pattern = TexturePattern.TEXTURE
    else:
        pattern = TexturePattern.COMPLEX

    direction = math.degrees(math.atan2(float(np.abs(gy).mean()), float(np.abs(gx).mean())))

    return TextureAnalysis(
        pattern=pattern,
        direction=direction,
        scale=float(gray.std() / 255.0),
        roughness=edge_density,
        periodicity=_periodicity(gray, variance, rng),
    )


def _periodicity(gray: np.ndarray, variance: float, rng: np.random.Generator) -> float:
    """Máxima autocorrelación normalizada en desplazamientos diagonales."""
    h, w = gray.shape
    max_offset = min(h, w) // 4
    if variance <= 0 or max_offset < 1:
        return 0.0

    mean = float(gray.mean())
    best = 0.0
    for offset in range(1, max_offset + 1):
        ys = rng.integers(0, h - offset, size=PERIODICITY_SAMPLES)
        xs = rng.integers(0, w - offset, size=PERIODICITY_SAMPLES)
        a = gray[ys, xs] - mean
        b = gray[ys + offset, xs + offset] - mean
        corr = float((a * b).mean() / variance)
        best = max(best, corr)
    return min(1.0, best)


def aggregate_textures(patches: Sequence[TextureAnalysis]) -> TextureAnalysis | None:
    if not patches:
        return None
    votes = Counter(p.pattern for p in patches)
    pattern = max(_PATTERN_ORDER, key=lambda p: (votes[p], -_PATTERN_ORDER.index(p)))
    n = len(patches)
    return TextureAnalysis(
        pattern=pattern,
        direction=sum(p.direction for p in patches) / n,
        scale=sum(p.scale for p in patches) / n,
        roughness=sum(p.roughness for p in patches) / n,
        periodicity=sum(p.periodicity for p in patches) / n,
    )


class BackgroundReconstructor:
    """Elimina el texto de las regiones indicadas y reconstruye el fondo."""

    def create_mask(self, size: Tuple[int, int], boxes: Sequence[BBox]) -> Image.Image:
        """Máscara L: cajas acolchadas max(2, 10% del lado menor) y desenfocadas."""
        width, height = size
        mask = Image.new("L", (width, height), 0)
        draw = ImageDraw.Draw(mask)
        for box in boxes:
            padding = max(2, int(0.1 * min(box.width, box.height)))
            padded = box.expanded(padding, padding).clamped(width, height)
            draw.rectangle((padded.x0, padded.y0, padded.x1 - 1, padded.y1 - 1), fill=255)
        return mask.filter(ImageFilter.GaussianBlur(MASK_BLUR_RADIUS))

    def analyze_texture(
        self, image: Image.Image, boxes: Sequence[BBox], seed: int = 0
    ) -> TextureAnalysis | None:
        """Muestrea parches en las cuatro esquinas exteriores de cada caja."""
        gray = luminance(np.asarray(image.convert("RGB"), dtype=np.float64))
        height, width = gray.shape
        rng = np.random.default_rng(seed)

        patches: List[TextureAnalysis] = []
        for box in boxes:
            size = int(min(50, max(20, box.width / 2)))
            corners = [
                (box.x0 - size, box.y0 - size),
                (box.x1, box.y0 - size),
                (box.x0 - size, box.y1),
                (box.x1, box.y1),
            ]
            for x, y in corners:
                if x < 0 or y < 0 or x + size > width or y + size > height:
                    continue
                patches.append(analyze_patch(gray[y : y + size, x : x + size], rng))

        return aggregate_textures(patches)

    def select_method(
        self, requested: ReconstructionMethod, texture: TextureAnalysis | None
    ) -> ReconstructionMethod:
        if requested != ReconstructionMethod.CONTENT_AWARE_FILL:
            return requested
        if texture is None:
            return ReconstructionMethod.EDGE_PRESERVING_SMOOTHING
        return _AUTO_METHOD[texture.pattern]

    def reconstruct(
        self,
        image: Image.Image,
        regions: Sequence[TextRegion],
        options: ReconstructionOptions | None = None,
    ) -> ReconstructionResult:
        options = tune_for_quality(options or ReconstructionOptions())
        start = time.perf_counter()
        boxes = [region.bbox for region in regions]
        mask = self.create_mask(image.size, boxes)

        try:
            texture = (
                self.analyze_texture(image, boxes, options.seed)
                if options.texture_analysis
                else None
            )
            method = self.select_method(options.method, texture)
            filled = self._fill(image, mask, method, options)
            confidence = self._confidence(image, boxes, texture)
        except Exception as exc:
            logger.exception("Background reconstruction failed")
            return ReconstructionResult(
                image=image.copy(),
                mask=mask,
                method=options.method,
                confidence=0.0,
                success=False,
                processing_time=time.perf_counter() - start,
                error=str(exc),
            )

        elapsed = time.perf_counter() - start
        logger.info(
            "Reconstructed %d regions with %s (texture=%s, confidence=%.2f) in %.3fs",
            len(boxes),
            method.value,
            texture.pattern.value if texture else None,
            confidence,
            elapsed,
        )
        return ReconstructionResult(
            image=filled,
            mask=mask,
            method=method,
            confidence=confidence,
            success=True,
            processing_time=elapsed,
            texture=texture,
        )

    def _fill(
        self,
        image: Image.Image,
        mask: Image.Image,
        method: ReconstructionMethod,
        options: ReconstructionOptions,
    ) -> Image.Image:
        source = image.convert("RGBA")
        soft = np.asarray(mask, dtype=np.float64)
        unknown = soft > 0
        if not unknown.any():
            return source.copy()

        # Sólo trabajamos sobre la ventana que contiene la máscara (más margen)
        margin = max(2, options.blending_radius) + 1
        ys, xs = np.nonzero(unknown)
        y0, y1 = max(0, ys.min() - margin), min(soft.shape[0], ys.max() + margin + 1)
        x0, x1 = max(0, xs.min() - margin), min(soft.shape[1], xs.max() + margin + 1)

        pixels = np.asarray(source, dtype=np.float64)
        window = pixels[y0:y1, x0:x1]
        filled_window = filler_for(method, options)(window, unknown[y0:y1, x0:x1], options)

        # Por encima de 128 el relleno es total; por debajo se funde con el original
        alpha = np.minimum(1.0, soft[y0:y1, x0:x1] * 2 / 255.0)[..., None]
        blended = window * (1 - alpha) + filled_window * alpha

        result = pixels.copy()
        result[y0:y1, x0:x1] = blended
        return Image.fromarray(np.clip(np.rint(result), 0, 255).astype(np.uint8), "RGBA")

    def _confidence(
        self, image: Image.Image, boxes: Sequence[BBox], texture: TextureAnalysis | None
    ) -> float:
        confidence = 0.5
        if texture is not None:
            confidence += _PATTERN_BONUS[texture.pattern]
            confidence -= texture.roughness * 0.2
        image_area = max(1, image.width * image.height)
        text_area = sum(box.area for box in boxes)
        confidence -= (text_area / image_area) * 0.3
        return min(1.0, max(0.0, confidence))
