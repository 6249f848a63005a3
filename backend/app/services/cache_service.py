"""Caché en disco para resultados de OCR y traducciones.

Cada tipo de dato vive en su propio subdirectorio (`ocr/`, `tr/`) y las
claves se derivan de un hash del contenido, así que repetir la misma imagen
o el mismo texto no vuelve a llamar a los servicios externos.
"""

from __future__ import annotations

import json
import logging
import shutil
from hashlib import sha256
from pathlib import Path
from typing import Any

from app.core.config import get_settings

logger = logging.getLogger(__name__)

OCR_NAMESPACE = "ocr"
TRANSLATION_NAMESPACE = "tr"


class CacheService:
    """Caché JSON basada en ficheros, agrupada por espacio de nombres."""

    def __init__(self, base_dir: Path | None = None) -> None:
        settings = get_settings()
        self.base_dir = base_dir or settings.data_dir / "cache"
        self.base_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def key_hash(data: bytes | str) -> str:
        """Hash estable para usar como clave de caché."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        return sha256(data).hexdigest()

    @classmethod
    def ocr_key(cls, image_bytes: bytes, language: str = "auto") -> str:
        return f"{OCR_NAMESPACE}:{language}:{cls.key_hash(image_bytes)}"

    @classmethod
    def translation_key(cls, source_lang: str, target_lang: str, text: str) -> str:
        return f"{TRANSLATION_NAMESPACE}:{source_lang}-{target_lang}:{cls.key_hash(text)}"

    def _path_for_key(self, key: str, suffix: str) -> Path:
        """`ns:a:b` -> base_dir/ns/a_b.suffix (sin caracteres problemáticos)."""
        namespace, _, rest = key.partition(":")
        if not rest:
            namespace, rest = "misc", namespace
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in rest)
        return self.base_dir / namespace / f"{safe}.{suffix}"

    def get_json(self, key: str) -> Any | None:
        """Lee un valor JSON cacheado, o None si no existe o está corrupto."""
        path = self._path_for_key(key, "json")
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Discarding unreadable cache entry %s", path)
            return None

    def set_json(self, key: str, value: Any) -> None:
        path = self._path_for_key(key, "json")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")

    def clear(self, namespace: str | None = None) -> None:
        """Borra un espacio de nombres o toda la caché."""
        target = self.base_dir / namespace if namespace else self.base_dir
        if target.exists():
            shutil.rmtree(target)
        self.base_dir.mkdir(parents=True, exist_ok=True)
