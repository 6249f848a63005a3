"""Detección de texto con Google Vision OCR y agrupado de palabras en regiones."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import List, Protocol, Sequence

from google.cloud import vision

from app.core.config import get_settings
from app.models.text import BBox, OcrWord, TextRegion
from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)


class OcrEngine(Protocol):
    async def recognize(self, image_bytes: bytes, language: str = "auto") -> List[OcrWord]: ...


def _words_nearby(a: OcrWord, b: OcrWord, height_factor: float) -> bool:
    """Cerca si la distancia entre esquinas superiores < factor × altura media."""
    distance = math.hypot(a.bbox.x0 - b.bbox.x0, a.bbox.y0 - b.bbox.y0)
    avg_height = (a.bbox.height + b.bbox.height) / 2
    return distance < avg_height * height_factor


def group_words_into_regions(
    words: Sequence[OcrWord],
    min_confidence: float | None = None,
    height_factor: float | None = None,
) -> List[TextRegion]:
    """
    Descarta palabras vacías o poco fiables y agrupa cada palabra con las
    que tiene cerca (comparando siempre con la palabra semilla del grupo).
    El texto se une con espacios, la caja es la unión y la confianza la
    media normalizada a [0, 1].
    """
    settings = get_settings()
    min_confidence = settings.ocr_min_word_confidence if min_confidence is None else min_confidence
    height_factor = settings.ocr_merge_height_factor if height_factor is None else height_factor

    kept = [w for w in words if w.text.strip() and w.confidence >= min_confidence]
    used: set[int] = set()
    regions: List[TextRegion] = []

    for i, seed in enumerate(kept):
        if i in used:
            continue
        used.add(i)
        group = [seed]
        for j in range(i + 1, len(kept)):
            if j not in used and _words_nearby(seed, kept[j], height_factor):
                group.append(kept[j])
                used.add(j)

        regions.append(
            TextRegion(
                id=f"region_{len(regions)}",
                text=" ".join(w.text.strip() for w in group),
                bbox=BBox.union([w.bbox for w in group]),
                confidence=sum(w.confidence for w in group) / len(group) / 100.0,
            )
        )

    logger.debug("Grouped %d words into %d regions", len(kept), len(regions))
    return regions


class OcrService:
    """
    Extrae palabras con Google Cloud Vision (`document_text_detection`).
    Los resultados se cachean por hash de la imagen e idioma pedido.
    """

    def __init__(self, cache_service: CacheService | None = None) -> None:
        self.client = None
        self.cache = cache_service or CacheService()

    def _get_client(self):
        """Crea el cliente de Vision sólo cuando se necesita."""
        if self.client is None:
            self.client = vision.ImageAnnotatorClient()
        return self.client

    async def recognize(self, image_bytes: bytes, language: str = "auto") -> List[OcrWord]:
        cache_key = CacheService.ocr_key(image_bytes, language)
        cached = self.cache.get_json(cache_key)
        if isinstance(cached, list):
            return [OcrWord.model_validate(w) for w in cached]

        # La librería de Vision es síncrona: la sacamos del event loop
        words = await asyncio.to_thread(self._recognize_sync, image_bytes, language)
        self.cache.set_json(cache_key, [w.model_dump() for w in words])
        logger.info("OCR found %d words", len(words))
        return words

    def _recognize_sync(self, image_bytes: bytes, language: str) -> List[OcrWord]:
        client = self._get_client()
        extra = {}
        if language and language != "auto":
            extra["image_context"] = vision.ImageContext(language_hints=[language])
        response = client.document_text_detection(
            image=vision.Image(content=image_bytes), **extra
        )

        if response.error.message:
            raise RuntimeError(f"Google Vision OCR error: {response.error.message}")

        words: List[OcrWord] = []
        invalid = 0
        for page in response.full_text_annotation.pages:
            for block in page.blocks:
                for paragraph in block.paragraphs:
                    for word in paragraph.words:
                        # Pueden venir vértices sin x/y
                        xs = [v.x or 0 for v in word.bounding_box.vertices]
                        ys = [v.y or 0 for v in word.bounding_box.vertices]
                        if not xs or min(xs) == max(xs) or min(ys) == max(ys):
                            invalid += 1
                            continue
                        words.append(
                            OcrWord(
                                text="".join(s.text for s in word.symbols),
                                bbox=BBox(x0=min(xs), y0=min(ys), x1=max(xs), y1=max(ys)),
                                confidence=max(0.0, min(100.0, word.confidence * 100)),
                            )
                        )

        if invalid:
            logger.debug("Skipped %d words with degenerate boxes", invalid)
        return words
