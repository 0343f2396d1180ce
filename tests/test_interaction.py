import pytest

from history import AnnotationSet
from interaction import (
    Button, CURSOR_ARROW, CURSOR_CROSS, CURSOR_FORBIDDEN, CURSOR_GRAB, CURSOR_PREVIEW,
    PageInteraction, State,
)
from models import Callout, ClipboardItem, PLACEMENT_SAME_PAGE, Point, Rect
from viewport import Transform, fit_to_width

PAGE = (612.0, 792.0)


@pytest.fixture()
def page(clipboard, settings):
    return PageInteraction(0, PAGE, clipboard, settings)


def _drag(page, start, end):
    page.press(Point(*start))
    page.move(Point(*end))
    return page.release(Point(*end))


def test_clipboard_capture_then_place(page, clipboard):
    request = _drag(page, (100, 100), (150, 140))
    assert request.to_clipboard
    assert request.source_rect == Rect(100, 100, 50, 40)
    assert request.magnification == 3
    assert page.state is State.IDLE

    clipboard.capture(ClipboardItem(request.page_index, request.source_rect,
                                    request.magnification))
    callout = page.press(Point(400, 300))
    assert callout == Callout(0, Rect(100, 100, 50, 40), Point(325, 240), 3)
    assert page.state is State.IDLE


def test_same_page_capture_then_place(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    request = _drag(page, (150, 140), (100, 100))
    assert not request.to_clipboard
    assert page.state is State.PLACING

    page.move(Point(400, 300))
    assert page.placement_valid
    assert page.cursor == CURSOR_PREVIEW
    callout = page.press(Point(400, 300))
    assert callout.source_rect == Rect(100, 100, 50, 40)
    assert callout.scale == 3
    assert callout.dest_point == Point(325, 240)
    assert page.state is State.IDLE


def test_same_page_placement_off_the_page_is_refused(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    _drag(page, (100, 100), (150, 140))
    page.move(Point(10, 10))
    assert not page.placement_valid
    assert page.cursor == CURSOR_FORBIDDEN
    assert page.press(Point(10, 10)) is None
    assert page.state is State.PLACING


def test_clipboard_placement_may_overhang_the_page(page, clipboard):
    clipboard.capture(ClipboardItem(1, Rect(0, 0, 100, 100), 4))
    page.move(Point(5, 5))
    assert page.placement_valid
    callout = page.press(Point(5, 5))
    assert callout.dest_point == Point(-195, -195)


def test_degenerate_drag_is_discarded(page):
    assert _drag(page, (10, 10), (12, 11)) is None
    assert page.state is State.IDLE


def test_thin_drag_is_discarded(page):
    assert _drag(page, (10, 10), (200, 12)) is None


def test_escape_discards_pending_placement(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    _drag(page, (100, 100), (150, 140))
    assert page.escape()
    assert page.state is State.IDLE
    assert page.preview_callout() is None
    assert not page.escape()


def test_stale_preview_is_ignored(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    first = _drag(page, (100, 100), (150, 140))
    page.escape()
    assert not page.preview_ready(first.token, b"png")
    second = _drag(page, (200, 200), (260, 260))
    assert second.token != first.token
    assert not page.preview_ready(first.token, b"old")
    assert page.preview_ready(second.token, b"new")
    assert page.pending_preview == b"new"


def test_failed_preview_keeps_placing(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    request = _drag(page, (100, 100), (150, 140))
    assert not page.preview_ready(request.token, None)
    assert page.state is State.PLACING


def test_composition_page_never_selects(clipboard, settings):
    page = PageInteraction(3, (595, 842), clipboard, settings, is_composition=True)
    assert page.cursor == CURSOR_ARROW
    assert _drag(page, (10, 10), (200, 200)) is None
    assert page.state is State.IDLE


def test_composition_page_accepts_clipboard_placement(clipboard, settings):
    page = PageInteraction(3, (595, 842), clipboard, settings, is_composition=True)
    clipboard.capture(ClipboardItem(0, Rect(0, 0, 10, 10), 2))
    assert page.press(Point(100, 100)).dest_point == Point(90, 90)


def test_alt_drag_pans(page):
    page.set_viewport((306.0, 400.0))
    page.transform = Transform(2.0, 0.0, 0.0)
    page.press(Point(100, 100), alt=True)
    assert page.state is State.PANNING
    assert page.cursor == CURSOR_GRAB
    page.move(Point(60, 70))
    assert (page.transform.x, page.transform.y) == (-40, -30)
    assert not page.wheel(Point(10, 10), -120)
    page.release(Point(60, 70))
    assert page.state is State.IDLE


def test_wheel_zoom_refused_while_selecting(page):
    page.press(Point(10, 10))
    assert page.state is State.SELECTING
    assert not page.wheel(Point(10, 10), -120)
    assert page.transform == Transform()


def test_wheel_zoom_allowed_while_placing(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    _drag(page, (100, 100), (150, 140))
    assert page.wheel(Point(50, 50), -120)
    assert page.state is State.PLACING
    assert page.transform.scale == pytest.approx(1.2)


def test_zoom_keeps_preview_under_the_cursor(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    page.set_viewport(PAGE)
    _drag(page, (100, 100), (150, 140))
    page.move(Point(400, 300))
    assert page.zoom_by(2.0)
    assert page.transform == Transform(2.0, -306.0, -396.0)
    centre = page.preview_callout().dest_rect.center
    assert (centre.x, centre.y) == pytest.approx((353.0, 348.0))


def test_wheel_reads_preview_position_at_the_wheel_point(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    _drag(page, (100, 100), (150, 140))
    page.move(Point(400, 300))
    page.wheel(Point(200, 100), -120)
    centre = page.preview_callout().dest_rect.center
    assert (centre.x, centre.y) == pytest.approx((200.0, 100.0))


def test_arrow_pan_keeps_clipboard_preview_under_the_cursor(page, clipboard):
    clipboard.capture(ClipboardItem(0, Rect(100, 100, 50, 40), 3))
    page.set_viewport((306.0, 400.0))
    page.transform = Transform(2.0, -100.0, -100.0)
    page.move(Point(200, 200))
    assert page.pan_key(-1, 0)
    centre = page.preview_callout().dest_rect.center
    assert (centre.x, centre.y) == pytest.approx((160.0, 150.0))


def test_middle_click_resets_to_fit_width(page):
    page.set_viewport((306.0, 1000.0))
    page.wheel(Point(100, 100), -120)
    page.press(Point(10, 10))
    page.press(Point(0, 0), Button.MIDDLE)
    assert page.state is State.IDLE
    assert page.transform == fit_to_width(PAGE, (306.0, 1000.0))


def test_leave_cancels_drag(page):
    page.press(Point(10, 10))
    page.leave()
    assert page.state is State.IDLE
    assert page.cursor == CURSOR_CROSS


def test_leave_while_placing_invalidates_the_position(page, settings):
    settings.placement_mode = PLACEMENT_SAME_PAGE
    _drag(page, (100, 100), (150, 140))
    page.leave()
    assert page.state is State.PLACING
    assert not page.placement_valid


def test_arrow_keys_pan_by_the_configured_step(page):
    page.set_viewport((306.0, 400.0))
    page.transform = Transform(2.0, -100.0, -100.0)
    assert page.pan_key(-1, 0)
    assert page.transform.x == -120
    assert page.pan_key(0, 1)
    assert page.transform.y == -80


def test_selection_rect_is_normalized_while_dragging(page):
    page.press(Point(150, 140))
    page.move(Point(100, 100))
    assert page.selection_rect == Rect(100, 100, 50, 40)


def test_drag_maps_through_the_transform(page):
    page.transform = Transform(2.0, 10.0, 20.0)
    request = _drag(page, (210, 220), (310, 300))
    assert request.source_rect == Rect(100, 100, 50, 40)


def test_callout_at_returns_topmost(page):
    below = Callout(0, Rect(0, 0, 10, 10), Point(100, 100), 5)
    above = Callout(1, Rect(0, 0, 10, 10), Point(120, 120), 5)
    annotations = AnnotationSet({0: (below, above)})
    assert page.callout_at(Point(130, 130), annotations) == 1
    assert page.callout_at(Point(105, 105), annotations) == 0
    assert page.callout_at(Point(400, 400), annotations) is None
