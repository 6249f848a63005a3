import asyncio

import pytest

from app.core.enums import ProcessingStage
from app.models.options import FilterOptions
from app.services.filter_pipeline import (
    NO_TEXT_MESSAGE,
    FilterPipeline,
    ProgressReporter,
    StageResult,
    overall_confidence,
)
from stubs import StubOcr, StubTranslator, make_word, png_bytes, sign_image

WORDS = [
    make_word("Hello", 20, 20, 80, 45),
    make_word("Bye", 20, 70, 80, 95),
]
TABLE = {"Hello": "Hola", "Bye": "Adiós"}


def _image():
    return sign_image(boxes=[(24, 24, 76, 41), (24, 74, 76, 91)])


def _pipeline(words=WORDS, table=TABLE, error=None) -> FilterPipeline:
    return FilterPipeline(ocr=StubOcr(words, error=error), translator=StubTranslator(table))


def _run(pipeline, data, options=None, progress=None, cancel=None):
    return asyncio.run(pipeline.apply_filter(data, options, progress=progress, cancel=cancel))


def test_full_run_translates_every_region():
    image = _image()

    result = _run(_pipeline(), png_bytes(image))

    assert result.success
    assert result.error is None
    assert [s.stage for s in result.stages] == [
        ProcessingStage.LOADING,
        ProcessingStage.OCR_ANALYSIS,
        ProcessingStage.STYLE_ANALYSIS,
        ProcessingStage.TRANSLATION,
        ProcessingStage.TEXT_RENDERING,
        ProcessingStage.FINALIZATION,
    ]
    assert all(s.success for s in result.stages)
    assert [r.translated_text for r in result.regions] == ["Hola", "Adiós"]
    assert len(result.style_models) == 2
    assert len(result.fittings) == 2
    assert result.detected_language == "es"
    assert result.translated.size == image.size
    assert result.translated.tobytes() != result.original.tobytes()
    assert 0.0 < result.confidence <= 1.0


def test_no_text_returns_untouched_image_and_single_failed_stage():
    image = _image()

    result = _run(_pipeline(words=[]), png_bytes(image))

    assert result.success is False
    assert result.error == NO_TEXT_MESSAGE
    assert result.translated.tobytes() == result.original.tobytes()
    assert len(result.stages) == 1
    assert result.stages[0].stage == ProcessingStage.OCR_ANALYSIS
    assert result.stages[0].success is False
    assert result.confidence == 0.0


def test_low_confidence_words_count_as_no_text():
    words = [make_word("Hello", 20, 20, 80, 45, confidence=10)]

    result = _run(_pipeline(words=words), png_bytes(_image()))

    assert result.success is False
    assert result.error == NO_TEXT_MESSAGE


def test_progress_is_monotonic_and_completes():
    updates = []

    _run(_pipeline(), png_bytes(_image()), progress=lambda p, m: updates.append((p, m)))

    values = [p for p, _ in updates]
    assert values == sorted(values)
    assert values[0] == 5
    assert updates[-1] == (100, "Complete!")
    assert (50, "Translating text...") in updates
    # Una actualización por región durante el análisis de estilo
    assert [p for p, m in updates if m == "Analyzing text styles..."] == [35, 40, 45]


def test_ocr_failure_aborts_with_partial_stage_log():
    result = _run(_pipeline(error=RuntimeError("vision down")), png_bytes(_image()))

    assert result.success is False
    assert "ocr_analysis" in result.error
    assert [(s.stage, s.success) for s in result.stages] == [
        (ProcessingStage.LOADING, True),
        (ProcessingStage.OCR_ANALYSIS, False),
    ]
    assert result.stages[-1].error == "vision down"
    assert result.translated.tobytes() == result.original.tobytes()


def test_rendering_failure_is_reported_on_its_stage(monkeypatch):
    pipeline = _pipeline()

    def boom(*args, **kwargs):
        raise RuntimeError("compositor broke")

    monkeypatch.setattr(pipeline.replacer, "replace", boom)
    result = _run(pipeline, png_bytes(_image()))

    assert result.success is False
    assert result.stages[-1].stage == ProcessingStage.TEXT_RENDERING
    assert result.stages[-1].success is False
    assert len(result.stages) == 5
    assert result.translated.tobytes() == result.original.tobytes()
    # Etapas fallidas cuentan como 0 en la media
    assert result.confidence < 0.8


def test_untranslated_regions_are_skipped_not_dropped():
    result = _run(_pipeline(table={"Hello": "Hola"}), png_bytes(_image()))

    assert result.success
    assert len(result.regions) == 2
    assert result.regions[1].translated_text is None
    assert result.replacement.skipped == ["region_1"]
    assert len(result.fittings) == 1


def test_cancellation_between_stages():
    async def scenario():
        cancel = asyncio.Event()

        def progress(percent, message):
            if percent >= 50:
                cancel.set()

        return await _pipeline().apply_filter(
            png_bytes(_image()), progress=progress, cancel=cancel
        )

    result = asyncio.run(scenario())

    assert result.cancelled
    assert result.success is False
    assert result.stages[-1].stage == ProcessingStage.TRANSLATION
    assert "text_rendering" in result.error


def test_invalid_bytes_fail_on_the_loading_stage():
    ocr = StubOcr(WORDS)
    result = _run(FilterPipeline(ocr=ocr, translator=StubTranslator(TABLE)), b"not an image")

    assert result.success is False
    assert result.error.startswith("Cannot decode image")
    assert result.failed_stage == ProcessingStage.LOADING
    assert [(s.stage, s.success) for s in result.stages] == [(ProcessingStage.LOADING, False)]
    assert result.original is None and result.translated is None
    assert result.confidence == 0.0
    assert ocr.calls == 0


def test_preview_is_side_by_side_or_disabled():
    image = _image()

    with_preview = _run(_pipeline(), png_bytes(image))
    without = _run(_pipeline(), png_bytes(image), FilterOptions(enable_preview=False))

    assert with_preview.preview.size == (image.width * 2 + 20, image.height + 60)
    assert without.preview is None
    assert without.success


def test_preserve_style_disabled_uses_neutral_styles():
    options = FilterOptions(preserve_style=False)

    result = _run(_pipeline(), png_bytes(_image()), options)

    assert result.success
    assert all(style.confidence == 0.5 for style in result.style_models)
    # Cajas de 25 px de alto -> fuente por defecto de 19 px
    assert all(style.typography.size == 19 for style in result.style_models)


def test_overall_confidence_counts_failures_as_zero():
    stages = [
        StageResult(ProcessingStage.LOADING, True, 0.1, 0.8),
        StageResult(ProcessingStage.OCR_ANALYSIS, True, 0.1, 0.6),
        StageResult(ProcessingStage.STYLE_ANALYSIS, False, 0.1, 0.9, error="x"),
    ]

    assert overall_confidence(stages) == pytest.approx((0.8 + 0.6) / 3)
    assert overall_confidence([]) == 0.0


def test_progress_reporter_never_goes_backwards():
    seen = []
    report = ProgressReporter(lambda p, m: seen.append(p))

    report(40, "a")
    report(20, "b")
    report(150, "c")

    assert seen == [40, 40, 100]
