"""Carga de configuración de la aplicación.

Usa `pydantic-settings` para leer valores desde `.env` o variables de
entorno. Los umbrales heurísticos del análisis de estilo, la reconstrucción
de fondo y el ajuste de texto viven aquí para poder afinarlos sin tocar el
código de los servicios.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Contenedor tipado para todas las opciones configurables."""

    app_name: str = "Relingo API"
    environment: str = "development"
    log_level: str = "INFO"

    # Directorio base para caché y resultados de jobs
    data_dir: Path = Path("data/jobs")

    # Claves externas (se rellenan vía .env)
    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1-mini"
    google_project_id: str | None = None
    google_credentials_file: str | None = None
    # CORS
    allowed_origins: list[str] = ["*"]
    allow_credentials: bool = False

    # Idiomas por defecto del filtro
    default_source_lang: str = "auto"
    default_target_lang: str = "en"

    # OCR: agrupado de palabras en regiones
    ocr_min_word_confidence: float = 30.0  # escala 0–100
    ocr_merge_height_factor: float = 2.0

    # Análisis de estilo (umbrales ajustables, sin base empírica documentada)
    style_edge_threshold: float = 0.5
    style_strong_edge_threshold: float = 0.7
    style_dark_threshold: int = 128
    style_glyph_threshold: int = 200
    style_bold_stroke_px: float = 3.0
    style_light_stroke_px: float = 1.5
    style_italic_slant: float = 0.1
    style_shadow_ratio: float = 0.1
    style_outline_ratio: float = 0.05

    # Reconstrucción de fondo
    reconstruction_blending_radius: int = 3
    reconstruction_iterations: int = 5
    reconstruction_seed: int = 0

    # Ajuste de texto (overflow)
    fit_max_scale_down: float = 0.6
    fit_max_scale_up: float = 1.2
    fit_max_expansion: int = 20
    fit_allow_line_breaking: bool = True
    fit_allow_abbreviation: bool = False
    fit_expand_bounds: bool = True

    # Render: carpeta extra donde buscar fuentes TrueType
    font_dir: Path | None = None

    # Le indicamos a Pydantic que lea automáticamente las variables de entorno
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    """Crea (y memoriza) la configuración de forma perezosa.

    Usamos `lru_cache` para que sólo se construya una instancia por proceso,
    evitando relecturas repetidas de `.env`. También normalizamos la lista de
    orígenes permitidos para CORS cuando llega como cadena separada por comas.
    """

    settings = Settings()
    ao = settings.allowed_origins
    if isinstance(ao, str):
        settings.allowed_origins = [s.strip() for s in ao.split(",") if s.strip()]
    return settings
