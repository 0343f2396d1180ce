import pytest

from models import Point
from viewport import (
    MAX_SCALE, MIN_SCALE, Transform, clamp, fit_to_width, pan_by, to_document,
    to_screen, wheel_factor, zoom_at,
)

TRANSFORMS = [
    Transform(),
    Transform(2.0, -150.0, 30.0),
    Transform(0.37, 12.5, -800.25),
    Transform(19.9, -12000.0, -4000.0),
]

POINTS = [Point(0, 0), Point(50, 50), Point(612, 792), Point(-3.5, 1e4)]


@pytest.mark.parametrize("transform", TRANSFORMS)
@pytest.mark.parametrize("point", POINTS)
def test_document_screen_round_trip(transform, point):
    back = to_document(to_screen(point, transform), transform)
    assert back.x == pytest.approx(point.x)
    assert back.y == pytest.approx(point.y)


@pytest.mark.parametrize("transform", TRANSFORMS)
@pytest.mark.parametrize("viewport", [(800, 600), (300, 2000), (5000, 5000)])
def test_clamp_is_idempotent(transform, viewport):
    once = clamp(transform, (612, 792), viewport)
    assert clamp(once, (612, 792), viewport) == once


def test_clamp_centres_small_page():
    t = clamp(Transform(1.0, -40, 900), (612, 792), (1000, 1000))
    assert t.x == pytest.approx((1000 - 612) / 2)
    assert t.y == pytest.approx((1000 - 792) / 2)


def test_clamp_keeps_large_page_covering_viewport():
    page, view = (612, 792), (400, 300)
    t = clamp(Transform(2.0, 50, -5000), page, view)
    assert t.x == 0
    assert t.y == pytest.approx(300 - 792 * 2)


def test_zoom_keeps_anchor_fixed():
    anchor = Point(50, 50)
    before = to_document(anchor, Transform())
    assert before == Point(50, 50)
    zoomed = zoom_at(Transform(), anchor, 0.8)
    assert zoomed.scale == pytest.approx(0.8)
    after = to_screen(before, zoomed)
    assert after.x == pytest.approx(50)
    assert after.y == pytest.approx(50)


def test_zoom_scale_is_clamped():
    assert zoom_at(Transform(), Point(0, 0), 1000).scale == MAX_SCALE
    assert zoom_at(Transform(), Point(0, 0), 1e-6).scale == MIN_SCALE


def test_zoom_with_sizes_is_clamped():
    t = zoom_at(Transform(), Point(0, 0), 0.5, (612, 792), (800, 800))
    assert t == clamp(t, (612, 792), (800, 800))
    assert t.x == pytest.approx((800 - 306) / 2)


def test_wheel_factor():
    assert wheel_factor(-120) == pytest.approx(1.2)
    assert wheel_factor(120) == pytest.approx(0.8)
    assert wheel_factor(0) == 1.0


def test_fit_to_width_centres_vertically():
    t = fit_to_width((612, 792), (306, 1000))
    assert t.scale == pytest.approx(0.5)
    assert t.x == pytest.approx(0)
    assert t.y == pytest.approx((1000 - 396) / 2)


def test_pan_by_is_clamped():
    page, view = (612, 792), (306, 400)
    t = Transform(2.0, 0, 0)
    moved = pan_by(t, -20, -20, page, view)
    assert (moved.x, moved.y) == (-20, -20)
    assert pan_by(t, 20, 20, page, view) == t
    far = pan_by(t, -1e6, 0, page, view)
    assert far.x == pytest.approx(306 - 1224)
