import numpy as np

from app.core.enums import QualityLevel, TextDecoration
from app.models.options import RenderingOptions
from app.models.style import (
    ColorStyle,
    Effects,
    GradientEffect,
    OutlineEffect,
    ShadowEffect,
    StyleModel,
    Typography,
)
from app.services.text_renderer import TextRenderer


def _style(**parts) -> StyleModel:
    values = dict(
        color=ColorStyle(text=(200, 0, 0)),
        typography=Typography(size=32, line_height=38.4),
    )
    values.update(parts)
    return StyleModel(**values)


def _coverage(image) -> int:
    return int((np.asarray(image.getchannel("A")) > 0).sum())


def test_render_returns_transparent_surface_of_target_size():
    result = TextRenderer().render("HELLO", _style(), (200, 60))

    assert result.success
    assert result.image.mode == "RGBA"
    assert result.image.size == (200, 60)
    assert result.layout.line_count == 1
    assert result.scale_applied == 1.0

    pixels = np.asarray(result.image)
    assert pixels[0, 0, 3] == 0
    opaque = pixels[pixels[..., 3] == 255]
    assert len(opaque) > 0
    assert (opaque[:, :3] == (200, 0, 0)).all()


def test_oversized_text_is_rescaled_to_fit():
    result = TextRenderer().render("Hello world", _style(), (60, 20))

    assert result.success
    assert result.scale_applied < 1.0
    assert result.font.size < 32
    assert result.image.size == (60, 20)


def test_without_adaptive_scaling_font_size_is_kept():
    options = RenderingOptions(adaptive_scaling=False)

    result = TextRenderer().render("Hello world", _style(), (60, 20), options)

    assert result.success
    assert result.scale_applied == 1.0
    assert result.font.size == 32


def test_opacity_scales_alpha():
    style = _style(effects=Effects(opacity=0.5))

    result = TextRenderer().render("HELLO", style, (200, 60))

    alpha = np.asarray(result.image.getchannel("A"))
    assert 0 < alpha.max() <= 128


def test_shadow_adds_coverage():
    renderer = TextRenderer()
    plain = renderer.render("HELLO", _style(), (200, 60))
    shadowed = renderer.render(
        "HELLO", _style(effects=Effects(shadow=ShadowEffect(offset=(2, 2), blur=2))), (200, 60)
    )

    assert _coverage(shadowed.image) > _coverage(plain.image)


def test_underline_adds_coverage():
    renderer = TextRenderer()
    plain = renderer.render("HELLO", _style(), (200, 60))
    underlined = renderer.render(
        "HELLO",
        _style(typography=Typography(size=32, decoration=TextDecoration.UNDERLINE)),
        (200, 60),
    )

    assert _coverage(underlined.image) > _coverage(plain.image)


def test_fast_quality_draws_without_antialiasing():
    options = RenderingOptions(quality_level=QualityLevel.FAST)

    result = TextRenderer().render("HELLO", _style(), (200, 60), options)

    values = set(np.unique(np.asarray(result.image.getchannel("A"))).tolist())
    assert values <= {0, 255}


def test_empty_text_renders_blank_surface():
    result = TextRenderer().render("", _style(), (50, 20))

    assert result.success
    assert result.layout.line_count == 0
    assert _coverage(result.image) == 0


def test_font_failure_returns_unsuccessful_result(monkeypatch):
    renderer = TextRenderer()

    def boom(*args, **kwargs):
        raise OSError("font missing")

    monkeypatch.setattr(renderer.fonts, "resolve", boom)
    result = renderer.render("HELLO", _style(), (80, 30))

    assert result.success is False
    assert result.error == "font missing"
    assert result.image.size == (80, 30)
    assert _coverage(result.image) == 0


def test_outline_is_drawn_with_stroke_color():
    renderer = TextRenderer()
    plain = renderer.render("HELLO", _style(), (200, 60))
    outlined = renderer.render(
        "HELLO",
        _style(effects=Effects(outline=OutlineEffect(width=2, color=(0, 0, 255)))),
        (200, 60),
    )

    assert _coverage(outlined.image) > _coverage(plain.image)
    pixels = np.asarray(outlined.image)
    blue = (pixels[..., 3] == 255) & (pixels[..., 2] > 200) & (pixels[..., 0] < 50)
    assert blue.any()


def _decoration_rows(image) -> np.ndarray:
    """Filas casi completamente cubiertas: sólo una línea de decoración llega a eso."""
    alpha = np.asarray(image.getchannel("A")) > 0
    cols = np.flatnonzero(alpha.any(axis=0))
    span = alpha[:, cols[0] : cols[-1] + 1]
    return np.flatnonzero(span.mean(axis=1) > 0.9)


def test_decoration_offsets_follow_the_baseline():
    renderer = TextRenderer()

    def rows(decoration):
        style = _style(typography=Typography(size=32, decoration=decoration))
        return _decoration_rows(renderer.render("HELLO", style, (200, 60)).image)

    over = rows(TextDecoration.OVERLINE)
    through = rows(TextDecoration.LINE_THROUGH)
    under = rows(TextDecoration.UNDERLINE)

    assert len(over) and len(through) and len(under)
    assert over.mean() < through.mean() < under.mean()


def test_gradient_goes_from_first_to_last_color():
    style = _style(effects=Effects(gradient=GradientEffect(colors=[(255, 0, 0), (0, 0, 255)])))

    result = TextRenderer().render("HELLO", style, (200, 60))

    pixels = np.asarray(result.image).astype(int)
    ys, xs = np.nonzero(pixels[..., 3] == 255)
    middle = (ys.min() + ys.max()) / 2
    top = pixels[ys[ys < middle], xs[ys < middle]]
    bottom = pixels[ys[ys > middle], xs[ys > middle]]
    assert top[:, 0].mean() > bottom[:, 0].mean()
    assert top[:, 2].mean() < bottom[:, 2].mean()


def test_original_style_can_be_replaced_by_neutral_one():
    renderer = TextRenderer()
    style = _style(effects=Effects(shadow=ShadowEffect(offset=(3, 3), blur=0), opacity=0.5))
    options = RenderingOptions(preserve_original_style=False)

    neutral = renderer.render("HELLO", style, (200, 60), options)
    plain = renderer.render("HELLO", _style(), (200, 60))

    assert neutral.font.size == 32
    pixels = np.asarray(neutral.image)
    opaque = pixels[pixels[..., 3] == 255]
    assert len(opaque) > 0
    assert (opaque[:, :3] == (0, 0, 0)).all()
    # Sin sombra: mismos glifos que el estilo plano
    assert _coverage(neutral.image) == _coverage(plain.image)
