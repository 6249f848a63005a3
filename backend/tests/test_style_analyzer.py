import numpy as np
import pytest
from PIL import Image, ImageDraw

from app.core.enums import ColorScheme, FontStyle, FontWeight, TextAlignment, TextDecoration
from app.models.style import ColorStyle, Effects, OutlineEffect, ShadowEffect, Typography
from app.models.text import BBox, TextRegion
from app.services.style_analyzer import StyleAnalyzer, contrast_ratio, sobel_magnitude


def _canvas(size=(200, 60), color="white") -> Image.Image:
    return Image.new("RGB", size, color)


def test_dark_text_on_light_background():
    img = _canvas((100, 40))
    ImageDraw.Draw(img).rectangle((10, 10, 40, 29), fill="black")

    style = StyleAnalyzer().analyze(img, BBox(x0=0, y0=0, x1=100, y1=40), "Hi")

    assert sum(style.color.text) < sum(style.color.background)
    assert style.color.contrast >= 1.0
    assert style.color.scheme == ColorScheme.LIGHT
    assert style.color.dominant == (240, 240, 240)  # blanco cuantizado a 16 niveles
    # 20 filas con tinta -> 0.75 * 20
    assert style.typography.size == 15
    assert 0.0 <= style.confidence <= 1.0


def test_light_text_on_dark_background_measures_glyph_rows():
    img = _canvas((100, 40), "black")
    ImageDraw.Draw(img).rectangle((10, 10, 40, 29), fill="white")

    style = StyleAnalyzer().analyze(img, BBox(x0=0, y0=0, x1=100, y1=40))

    assert style.color.scheme == ColorScheme.DARK
    assert style.typography.size == 15


def test_stroke_width_drives_weight():
    thick = _canvas()
    thin = _canvas()
    for x in range(10, 190, 20):
        ImageDraw.Draw(thick).rectangle((x, 10, x + 5, 49), fill="black")
        ImageDraw.Draw(thin).rectangle((x, 10, x + 1, 49), fill="black")

    analyzer = StyleAnalyzer()
    bbox = BBox(x0=0, y0=0, x1=200, y1=60)

    assert analyzer.analyze(thick, bbox).typography.weight == FontWeight.BOLD
    assert analyzer.analyze(thin, bbox).typography.weight == FontWeight.NORMAL


def test_slanted_strokes_are_italic_and_upright_are_not():
    slanted = _canvas()
    upright = _canvas()
    for x in range(10, 160, 40):
        ImageDraw.Draw(slanted).polygon(
            [(x, 50), (x + 6, 50), (x + 26, 10), (x + 20, 10)], fill="black"
        )
        ImageDraw.Draw(upright).rectangle((x, 10, x + 5, 49), fill="black")

    analyzer = StyleAnalyzer()
    bbox = BBox(x0=0, y0=0, x1=200, y1=60)

    assert analyzer.analyze(slanted, bbox).typography.style == FontStyle.ITALIC
    assert analyzer.analyze(upright, bbox).typography.style == FontStyle.NORMAL


def test_underline_detected_on_bottom_scanline():
    img = _canvas((200, 40))
    draw = ImageDraw.Draw(img)
    draw.rectangle((20, 5, 60, 30), fill="black")
    draw.rectangle((0, 35, 199, 37), fill="black")

    style = StyleAnalyzer().analyze(img, BBox(x0=0, y0=0, x1=200, y1=40))

    assert style.typography.decoration == TextDecoration.UNDERLINE


def test_letter_spacing_and_line_height():
    img = _canvas((300, 60))
    ImageDraw.Draw(img).rectangle((10, 10, 250, 25), fill="black")

    style = StyleAnalyzer().analyze(img, BBox(x0=0, y0=0, x1=300, y1=60), "abcde\nfghij")

    # 300 px / 11 caracteres - 10
    assert abs(style.typography.letter_spacing - (300 / 11 - 10)) < 1e-6
    assert style.typography.line_height == 30


def test_alignment_from_region_center():
    img = _canvas((300, 60))
    analyzer = StyleAnalyzer()

    left = analyzer.analyze(img, BBox(x0=10, y0=10, x1=90, y1=50))
    center = analyzer.analyze(img, BBox(x0=120, y0=10, x1=180, y1=50))
    right = analyzer.analyze(img, BBox(x0=220, y0=10, x1=290, y1=50))

    assert left.layout.alignment == TextAlignment.LEFT
    assert center.layout.alignment == TextAlignment.CENTER
    assert right.layout.alignment == TextAlignment.RIGHT
    # Línea base al 80% de la altura, márgenes contra la imagen
    assert left.layout.baseline == 50 - 40 * 0.2
    assert left.layout.margins.left == 10
    assert left.layout.margins.right == 210


def test_opacity_from_alpha_channel():
    img = Image.new("RGBA", (50, 20), (255, 255, 255, 128))
    style = StyleAnalyzer().analyze(img, BBox(x0=0, y0=0, x1=50, y1=20))

    assert abs(style.effects.opacity - 128 / 255) < 1e-6


def test_analysis_failure_falls_back_to_defaults(monkeypatch):
    analyzer = StyleAnalyzer()

    def boom(*args, **kwargs):
        raise RuntimeError("broken pixels")

    monkeypatch.setattr(analyzer, "_analyze_colors", boom)
    style = analyzer.analyze(_canvas(), BBox(x0=0, y0=0, x1=100, y1=40))

    assert style.typography.size == 30
    assert style.confidence == 0.5


def test_analyze_regions_returns_enriched_copies_in_order():
    img = _canvas((300, 60))
    regions = [
        TextRegion(id="b", text="uno", bbox=BBox(x0=200, y0=10, x1=280, y1=40)),
        TextRegion(id="a", text="dos", bbox=BBox(x0=10, y0=10, x1=90, y1=40)),
    ]

    enriched = StyleAnalyzer().analyze_regions(img, regions)

    assert [r.id for r in enriched] == ["b", "a"]
    assert all(r.style is not None for r in enriched)
    assert regions[0].style is None


def test_analysis_is_deterministic():
    img = _canvas()
    ImageDraw.Draw(img).rectangle((30, 15, 120, 40), fill=(40, 60, 200))
    bbox = BBox(x0=20, y0=5, x1=150, y1=55)

    analyzer = StyleAnalyzer()
    assert analyzer.analyze(img, bbox) == analyzer.analyze(img, bbox)


def test_helpers():
    assert contrast_ratio(255, 0) == (255 + 0.05) / 0.05
    edges = sobel_magnitude(np.zeros((2, 2)))
    assert edges.shape == (2, 2) and not edges.any()


def test_mid_gray_crop_is_flagged_as_shadow():
    img = _canvas((100, 40), (120, 120, 120))

    effects = StyleAnalyzer().analyze(img, BBox(x0=0, y0=0, x1=100, y1=40)).effects

    assert effects.shadow is not None
    assert effects.outline is None


def test_dense_sharp_edges_are_flagged_as_outline():
    img = _canvas((100, 40))
    draw = ImageDraw.Draw(img)
    for x in range(2, 98, 4):
        draw.line((x, 0, x, 39), fill="black")

    effects = StyleAnalyzer().analyze(img, BBox(x0=0, y0=0, x1=100, y1=40)).effects

    # Sólo blanco y negro: nada en la banda de grises de la sombra
    assert effects.shadow is None
    assert effects.outline is not None


def test_plain_crop_has_no_effects():
    effects = StyleAnalyzer().analyze(_canvas((100, 40)), BBox(x0=0, y0=0, x1=100, y1=40)).effects

    assert effects.shadow is None
    assert effects.outline is None
    assert effects.opacity == 1.0


def test_confidence_rewards_contrast_and_size_and_penalises_effects():
    analyzer = StyleAnalyzer()

    def score(contrast, size, effects=Effects()):
        return analyzer.confidence(ColorStyle(contrast=contrast), Typography(size=size), effects)

    assert score(1.5, 10) == pytest.approx(0.5)
    assert score(5, 10) == pytest.approx(0.7)
    assert score(8, 10) == pytest.approx(0.8)
    assert score(8, 14) == pytest.approx(0.9)
    assert score(8, 20) == pytest.approx(1.0)
    assert score(8, 20, Effects(shadow=ShadowEffect())) == pytest.approx(0.95)
    assert score(1.5, 10, Effects(outline=OutlineEffect())) == pytest.approx(0.45)
    assert score(1.5, 10) < score(5, 10) < score(8, 10) < score(8, 14) < score(8, 20)
