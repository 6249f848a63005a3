import asyncio
import base64

import numpy as np
import pytest
from PIL import Image

from app.core.enums import ImageKind, JobStatus
from app.models.options import FilterOptions
from app.services.export_service import ExportService
from app.services.filter_pipeline import FilterPipeline
from app.services.job_service import JobService, run_filter_job
from app.services.preview_service import PreviewService
from stubs import StubOcr, StubTranslator, make_word, png_bytes, sign_image


def _pair():
    original = Image.new("RGB", (100, 50), (200, 200, 200))
    translated = original.copy()
    translated.paste((0, 0, 0), (10, 10, 30, 20))
    return original, translated


def test_side_by_side_layout():
    original, translated = _pair()

    preview = PreviewService().side_by_side(original, translated)

    assert preview.size == (220, 110)
    assert preview.getpixel((50, 65)) == (200, 200, 200)
    # La traducida empieza tras el hueco de 20 px y la banda de 40 px
    assert preview.getpixel((120 + 15, 40 + 15)) == (0, 0, 0)


def test_overlay_blends_half_and_half():
    original, translated = _pair()

    overlay = PreviewService().overlay(original, translated)

    assert overlay.getpixel((15, 15)) == (100, 100, 100)
    assert overlay.getpixel((80, 40)) == (200, 200, 200)


def test_difference_marks_changed_pixels_in_red():
    original, translated = _pair()

    diff = np.asarray(PreviewService().difference(original, translated))

    assert tuple(diff[15, 15]) == (255, 0, 0)
    assert tuple(diff[40, 80]) == (200, 200, 200)
    assert int((diff == (255, 0, 0)).all(axis=-1).sum()) == 200


def test_build_returns_all_previews():
    original, translated = _pair()

    previews = PreviewService().build(original, translated)

    assert previews.side_by_side.size == (220, 110)
    assert previews.overlay.size == previews.difference.size == (100, 50)


def _result(words=None):
    words = [make_word("Hello", 20, 20, 80, 45)] if words is None else words
    pipeline = FilterPipeline(ocr=StubOcr(words), translator=StubTranslator({"Hello": "Hola"}))
    image = png_bytes(sign_image(boxes=[(24, 24, 76, 41)]))
    return asyncio.run(pipeline.apply_filter(image)), pipeline, image


def test_save_images_writes_every_raster(tmp_path):
    result, _, _ = _result()

    paths = ExportService().save_images(result, tmp_path / "out")

    assert set(paths) == {ImageKind.ORIGINAL, ImageKind.TRANSLATED, ImageKind.PREVIEW}
    assert Image.open(paths[ImageKind.TRANSLATED]).size == (240, 120)


def test_summary_describes_regions_fittings_and_stages():
    result, _, _ = _result()

    summary = ExportService().summarize(result)

    assert summary["success"] is True
    region = summary["regions"][0]
    assert region["translated_text"] == "Hola"
    assert region["bbox"] == [20, 20, 80, 45]
    assert region["style"]["typography"]["size"] > 0
    assert region["fitting"]["strategy"] in {
        "preserve_bounds",
        "adaptive_scaling",
        "multi_line_wrap",
        "overflow_expand",
        "abbreviation",
    }
    assert len(summary["stages"]) == 6


def test_response_embeds_png_images():
    result, _, _ = _result()

    payload = ExportService().to_response(result)

    assert base64.b64decode(payload["images"]["original"]).startswith(b"\x89PNG")
    assert payload["images"]["preview"] is not None


def test_run_filter_job_completes_and_saves(tmp_path):
    _, pipeline, image = _result()
    jobs = JobService()
    job = jobs.create_job(FilterOptions(), filename="sign.png")

    asyncio.run(run_filter_job(jobs, job.id, image, pipeline, output_dir=tmp_path))

    done = jobs.get_job(job.id)
    assert done.status == JobStatus.COMPLETED
    assert done.progress == 100
    assert done.progress_message == "Complete!"
    assert done.regions_total == 1 and done.regions_translated == 1
    assert done.outputs[ImageKind.PREVIEW] == tmp_path / "preview.png"


def test_run_filter_job_marks_undecodable_image_as_failed(tmp_path):
    _, pipeline, _ = _result()
    jobs = JobService()
    job = jobs.create_job(FilterOptions())

    asyncio.run(run_filter_job(jobs, job.id, b"nope", pipeline, output_dir=tmp_path))

    failed = jobs.get_job(job.id)
    assert failed.status == JobStatus.FAILED
    assert failed.error_message.startswith("Cannot decode image")
    assert failed.outputs == {}


def test_job_progress_never_goes_backwards():
    job = JobService().create_job(FilterOptions())

    job.update_progress(60, "a")
    job.update_progress(30, "b")
    job.update_progress(300, "c")

    assert job.progress == pytest.approx(100)
    assert job.progress_message == "c"


class FullDiskExport(ExportService):
    def save_images(self, result, output_dir):
        raise OSError("No space left on device")


def test_run_filter_job_fails_when_images_cannot_be_saved(tmp_path):
    _, pipeline, image = _result()
    jobs = JobService()
    job = jobs.create_job(FilterOptions())

    asyncio.run(
        run_filter_job(jobs, job.id, image, pipeline, FullDiskExport(), output_dir=tmp_path)
    )

    failed = jobs.get_job(job.id)
    assert failed.status == JobStatus.FAILED
    assert "No space left on device" in failed.error_message
    assert failed.outputs == {}
    assert failed.regions_total == 1
