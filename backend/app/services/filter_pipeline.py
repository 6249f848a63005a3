from __future__ import annotations

import asyncio
import inspect
import io
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Tuple, TypeVar

from PIL import Image, UnidentifiedImageError

from app.core.enums import ProcessingStage
from app.core.errors import FilterCancelledError, FilterError, ImageLoadError, StageFailedError
from app.models.options import FilterOptions
from app.models.style import StyleModel
from app.models.text import TextRegion
from app.services.ocr_service import OcrEngine, group_words_into_regions
from app.services.preview_service import PreviewService
from app.services.style_analyzer import StyleAnalyzer
from app.services.text_fitter import FittingResult
from app.services.text_replacer import ReplacementResult, TextReplacer
from app.services.translation_service import Translator, translate_regions

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[float, str], None]

DEFAULT_STAGE_CONFIDENCE = 0.8
NO_TEXT_MESSAGE = "No text detected in image"


@dataclass
class StageResult:
    stage: ProcessingStage
    success: bool
    duration: float
    confidence: float = 0.0
    error: str | None = None


@dataclass
class FilterResult:
    success: bool
    # None sólo cuando la propia carga falla
    original: Image.Image | None
    translated: Image.Image | None
    preview: Image.Image | None = None
    regions: List[TextRegion] = field(default_factory=list)
    style_models: List[StyleModel] = field(default_factory=list)
    replacement: ReplacementResult | None = None
    stages: List[StageResult] = field(default_factory=list)
    confidence: float = 0.0
    processing_time: float = 0.0
    detected_language: str | None = None
    cancelled: bool = False
    error: str | None = None

    @property
    def fittings(self) -> List[Tuple[TextRegion, FittingResult]]:
        return list(self.replacement.fittings) if self.replacement else []

    @property
    def failed_stage(self) -> ProcessingStage | None:
        failed = [s.stage for s in self.stages if not s.success]
        return failed[-1] if failed else None


def overall_confidence(stages: List[StageResult]) -> float:
    """Media de confianza de todas las etapas registradas (las fallidas cuentan 0)."""
    if not stages:
        return 0.0
    return sum(s.confidence if s.success else 0.0 for s in stages) / len(stages)


class ProgressReporter:
    """Reenvía el progreso al callback garantizando que nunca retrocede."""

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self.callback = callback
        self.value = 0.0

    def __call__(self, percent: float, message: str) -> None:
        self.value = max(self.value, min(100.0, float(percent)))
        logger.debug("Progress %.0f%%: %s", self.value, message)
        if self.callback is not None:
            self.callback(self.value, message)


class FilterPipeline:
    """
    Orquesta un filtro completo sobre una imagen:
    carga -> OCR -> estilo -> traducción -> render -> finalización.

    Las etapas son estrictamente secuenciales. Si una falla, la ejecución se
    aborta y el resultado conserva el registro parcial de etapas.
    """

    def __init__(
        self,
        ocr: OcrEngine,
        translator: Translator,
        style_analyzer: StyleAnalyzer | None = None,
        replacer: TextReplacer | None = None,
        preview_service: PreviewService | None = None,
    ) -> None:
        self.ocr = ocr
        self.translator = translator
        self.style_analyzer = style_analyzer or StyleAnalyzer()
        self.replacer = replacer or TextReplacer()
        self.preview_service = preview_service or PreviewService()

    async def apply_filter(
        self,
        image_bytes: bytes,
        options: FilterOptions | None = None,
        progress: ProgressCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> FilterResult:
        options = options or FilterOptions()
        report = ProgressReporter(progress)
        stages: List[StageResult] = []
        start = time.perf_counter()

        def check_cancel(stage: ProcessingStage) -> None:
            if cancel is not None and cancel.is_set():
                raise FilterCancelledError(stage.value)

        original: Image.Image | None = None
        regions: List[TextRegion] = []
        styles: List[StyleModel] = []
        detected_language: str | None = None

        try:
            # ---------- 1) Carga ----------
            report(5, "Loading image...")
            original = await self._run_stage(
                stages, ProcessingStage.LOADING, lambda: self._load_image(image_bytes)
            )
            report(15, "Analyzing image structure...")

            # ---------- 2) OCR ----------
            check_cancel(ProcessingStage.OCR_ANALYSIS)
            report(25, "Detecting text regions...")
            regions = await self._run_stage(
                stages,
                ProcessingStage.OCR_ANALYSIS,
                lambda: self._detect_regions(image_bytes, options.source_lang),
            )
            if not regions:
                logger.info(NO_TEXT_MESSAGE)
                return self._empty_result(original, start)

            # ---------- 3) Estilo ----------
            check_cancel(ProcessingStage.STYLE_ANALYSIS)
            report(35, "Analyzing text styles...")
            regions = await self._run_stage(
                stages,
                ProcessingStage.STYLE_ANALYSIS,
                lambda: self._analyze_styles(original, regions, options, report),
                confidence=lambda rs: sum(r.style.confidence for r in rs) / len(rs),
            )
            styles = [r.style for r in regions]

            # ---------- 4) Traducción ----------
            check_cancel(ProcessingStage.TRANSLATION)
            report(50, "Translating text...")
            regions, detected_language = await self._run_stage(
                stages,
                ProcessingStage.TRANSLATION,
                lambda: translate_regions(
                    self.translator, regions, options.source_lang, options.target_lang
                ),
            )

            # ---------- 5) Render ----------
            check_cancel(ProcessingStage.TEXT_RENDERING)
            report(70, "Rendering translated text...")
            replacement = await self._run_stage(
                stages,
                ProcessingStage.TEXT_RENDERING,
                lambda: asyncio.to_thread(
                    self.replacer.replace,
                    original,
                    regions,
                    styles,
                    options.overflow,
                    options.rendering,
                    options.reconstruction,
                ),
                confidence=lambda r: r.confidence,
            )

            # ---------- 6) Finalización ----------
            check_cancel(ProcessingStage.FINALIZATION)
            report(90, "Finalizing result...")
            translated = replacement.image
            preview = await self._run_stage(
                stages,
                ProcessingStage.FINALIZATION,
                lambda: self._build_preview(original, translated, options),
            )
        except FilterCancelledError as exc:
            logger.info("Filter cancelled before %s", exc.stage)
            return FilterResult(
                success=False,
                original=original,
                translated=original.copy(),
                regions=regions,
                style_models=styles,
                stages=stages,
                confidence=overall_confidence(stages),
                processing_time=time.perf_counter() - start,
                detected_language=detected_language,
                cancelled=True,
                error=str(exc),
            )
        except (StageFailedError, ImageLoadError) as exc:
            logger.error("Filter aborted: %s", exc)
            return FilterResult(
                success=False,
                original=original,
                translated=original.copy() if original is not None else None,
                regions=regions,
                style_models=styles,
                stages=stages,
                confidence=overall_confidence(stages),
                processing_time=time.perf_counter() - start,
                detected_language=detected_language,
                error=str(exc),
            )

        report(100, "Complete!")
        elapsed = time.perf_counter() - start
        result = FilterResult(
            success=True,
            original=original,
            translated=translated,
            preview=preview,
            regions=regions,
            style_models=styles,
            replacement=replacement,
            stages=stages,
            confidence=overall_confidence(stages),
            processing_time=elapsed,
            detected_language=detected_language,
        )
        logger.info(
            "Filter completed: %d regions, confidence %.2f, %.2fs",
            len(regions),
            result.confidence,
            elapsed,
        )
        return result

    # ---------- Etapas ----------

    async def _run_stage(
        self,
        stages: List[StageResult],
        stage: ProcessingStage,
        body: Callable[[], T | Awaitable[T]],
        confidence: Callable[[Any], float] | None = None,
    ) -> T:
        """Ejecuta una etapa y deja constancia de su duración y resultado."""
        started = time.perf_counter()
        try:
            value = body()
            if inspect.isawaitable(value):
                value = await value
        except FilterError as exc:
            stages.append(StageResult(stage, False, time.perf_counter() - started, error=str(exc)))
            raise
        except Exception as exc:
            logger.exception("Stage %s failed", stage.value)
            stages.append(StageResult(stage, False, time.perf_counter() - started, error=str(exc)))
            raise StageFailedError(stage.value, exc) from exc

        score = confidence(value) if confidence is not None else DEFAULT_STAGE_CONFIDENCE
        stages.append(
            StageResult(stage, True, time.perf_counter() - started, min(1.0, max(0.0, score)))
        )
        return value

    @staticmethod
    def _load_image(image_bytes: bytes) -> Image.Image:
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img.load()
                return img.convert("RGBA")
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise ImageLoadError(f"Cannot decode image: {exc}") from exc

    async def _detect_regions(self, image_bytes: bytes, language: str) -> List[TextRegion]:
        words = await self.ocr.recognize(image_bytes, language)
        return group_words_into_regions(words)

    def _analyze_styles(
        self,
        image: Image.Image,
        regions: List[TextRegion],
        options: FilterOptions,
        report: ProgressReporter,
    ) -> List[TextRegion]:
        enriched: List[TextRegion] = []
        for index, region in enumerate(regions):
            if options.preserve_style:
                style = self.style_analyzer.analyze(image, region.bbox, region.text)
            else:
                style = StyleModel.default(
                    font_size=max(8.0, round(region.bbox.height * 0.75)),
                    baseline=region.bbox.y1 - region.bbox.height * 0.2,
                )
            enriched.append(region.model_copy(update={"style": style}))
            report(35 + 10 * (index + 1) / len(regions), "Analyzing text styles...")
        return enriched

    def _build_preview(
        self, original: Image.Image, translated: Image.Image, options: FilterOptions
    ) -> Image.Image | None:
        if not options.enable_preview:
            return None
        return self.preview_service.side_by_side(original, translated)

    @staticmethod
    def _empty_result(original: Image.Image, start: float) -> FilterResult:
        """Resultado canónico sin texto: imagen intacta y una única etapa OCR fallida."""
        return FilterResult(
            success=False,
            original=original,
            translated=original.copy(),
            stages=[
                StageResult(
                    ProcessingStage.OCR_ANALYSIS,
                    success=False,
                    duration=time.perf_counter() - start,
                    error=NO_TEXT_MESSAGE,
                )
            ],
            confidence=0.0,
            processing_time=time.perf_counter() - start,
            error=NO_TEXT_MESSAGE,
        )
