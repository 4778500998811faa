import pytest

from api.features.similarity.tolerance import length_tolerance, length_window


@pytest.mark.parametrize(
    "length, expected",
    [
        (0, 100),
        (50, 100),
        (51, 77),
        (53, 80),
        (200, 300),
        (201, 101),
        (203, 102),
        (1000, 500),
        (1001, 300),
        (5000, 500),
    ],
)
def test_length_tolerance_bands(length, expected):
    assert length_tolerance(length) == expected


def test_proportional_widths_round_half_up():
    assert length_tolerance(53) == 80
    assert length_tolerance(203) == 102
    assert length_tolerance(1005) == 302


def test_window_is_clamped_at_zero():
    assert length_window(30) == (0, 130)


def test_window_uses_explicit_tolerance():
    assert length_window(400, tolerance=50) == (350, 450)


def test_window_for_long_text_is_capped():
    assert length_window(4000) == (3500, 4500)
