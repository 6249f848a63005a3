import pytest

from app.services.ocr_service import group_words_into_regions
from stubs import make_word


def test_words_on_the_same_line_are_grouped():
    words = [
        make_word("Hello", 10, 10, 60, 30),
        make_word("world", 40, 12, 100, 32),
        make_word("Far", 300, 300, 340, 320),
    ]

    regions = group_words_into_regions(words)

    assert [r.text for r in regions] == ["Hello world", "Far"]
    assert [r.id for r in regions] == ["region_0", "region_1"]
    assert regions[0].bbox.as_tuple() == (10, 10, 100, 32)
    assert regions[0].confidence == pytest.approx(0.9)


def test_low_confidence_and_blank_words_are_dropped():
    words = [
        make_word("noise", 10, 10, 60, 30, confidence=29.9),
        make_word("   ", 70, 10, 90, 30),
        make_word("kept", 200, 10, 250, 30, confidence=30),
    ]

    regions = group_words_into_regions(words)

    assert [r.text for r in regions] == ["kept"]
    assert regions[0].confidence == pytest.approx(0.3)


def test_distance_is_measured_from_the_group_seed():
    # b está cerca de a y c está cerca de b, pero no de a
    words = [
        make_word("a", 0, 0, 20, 20),
        make_word("b", 35, 0, 55, 20),
        make_word("c", 70, 0, 90, 20),
    ]

    regions = group_words_into_regions(words)

    assert [r.text for r in regions] == ["a b", "c"]


def test_thresholds_can_be_overridden():
    words = [
        make_word("a", 0, 0, 20, 20, confidence=50),
        make_word("b", 70, 0, 90, 20, confidence=50),
    ]

    assert len(group_words_into_regions(words)) == 2
    assert len(group_words_into_regions(words, height_factor=4.0)) == 1
    assert group_words_into_regions(words, min_confidence=60) == []


def test_no_words_no_regions():
    assert group_words_into_regions([]) == []
