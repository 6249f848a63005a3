"""Traducción de textos usando la API de OpenAI con caché local."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

from openai import OpenAI

from app.core.config import get_settings
from app.models.text import TextRegion
from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranslationOutcome:
    translated_text: str
    detected_language: str | None = None


class Translator(Protocol):
    async def translate(
        self, text: str, source_lang: str, target_lang: str
    ) -> TranslationOutcome: ...


class TranslationService:
    """
    Encapsula llamadas a la API de OpenAI para traducir el texto de una
    región. La respuesta se pide en JSON para recuperar también el idioma
    detectado cuando el origen es "auto".
    """

    def __init__(
        self, model: str | None = None, cache_service: CacheService | None = None
    ) -> None:
        self.settings = get_settings()
        self.client = None
        self.model = model or self.settings.openai_model
        self.cache = cache_service or CacheService()

    def _get_client(self):
        # El cliente usa OPENAI_API_KEY del entorno si no hay clave en settings
        if self.client is None:
            self.client = OpenAI(api_key=self.settings.openai_api_key)
        return self.client

    async def translate(
        self, text: str, source_lang: str, target_lang: str
    ) -> TranslationOutcome:
        """Traduce una cadena intentando reutilizar resultados previos."""
        cache_key = CacheService.translation_key(source_lang, target_lang, text)
        cached = self.cache.get_json(cache_key)
        if isinstance(cached, dict) and cached.get("translated_text"):
            return TranslationOutcome(
                translated_text=cached["translated_text"],
                detected_language=cached.get("detected_language"),
            )

        outcome = await asyncio.to_thread(self._translate_single, text, source_lang, target_lang)
        self.cache.set_json(
            cache_key,
            {
                "translated_text": outcome.translated_text,
                "detected_language": outcome.detected_language,
            },
        )
        return outcome

    def _translate_single(
        self, text: str, source_lang: str, target_lang: str
    ) -> TranslationOutcome:
        client = self._get_client()
        source = "detecta el idioma de origen" if source_lang == "auto" else f"desde {source_lang}"
        response = client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "system",
                    "content": (
                        "Eres un traductor profesional de textos que aparecen en imágenes "
                        "(carteles, capturas, etiquetas). Traduce de forma breve y natural."
                    ),
                },
                {
                    "role": "user",
                    "content": (
                        f"Traduce al idioma {target_lang} ({source}).\n"
                        "Devuelve SOLO un JSON válido con esta forma exacta:\n"
                        "{ \"translation\": \"...\", \"detected_language\": \"<código ISO>\" }\n"
                        f"Texto: {json.dumps(text, ensure_ascii=False)}"
                    ),
                },
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )

        raw = response.choices[0].message.content
        if raw is None:
            raise RuntimeError("OpenAI no devolvió contenido en la respuesta")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RuntimeError(
                f"Respuesta de OpenAI no es JSON válido: {e}\nContenido: {raw!r}"
            ) from e

        translation = data.get("translation")
        if not isinstance(translation, str):
            raise RuntimeError(f"Respuesta de OpenAI mal formada: {data!r}")

        detected = data.get("detected_language")
        return TranslationOutcome(
            translated_text=translation.strip(),
            detected_language=detected if isinstance(detected, str) and detected else None,
        )


async def translate_regions(
    translator: Translator,
    regions: Sequence[TextRegion],
    source_lang: str,
    target_lang: str,
) -> Tuple[List[TextRegion], str | None]:
    """
    Traduce región a región, en orden. Un fallo o una respuesta vacía deja la
    región sin `translated_text` (se salta después, no se elimina).
    """
    translated: List[TextRegion] = []
    detected: str | None = None

    for region in regions:
        try:
            outcome = await translator.translate(region.text, source_lang, target_lang)
        except Exception as exc:
            logger.warning("No translation for region %s: %s", region.id, exc)
            translated.append(region)
            continue

        text = outcome.translated_text.strip() if outcome.translated_text else ""
        if not text:
            logger.warning("Empty translation for region %s", region.id)
            translated.append(region)
            continue

        detected = detected or outcome.detected_language
        translated.append(region.model_copy(update={"translated_text": text}))

    return translated, detected
