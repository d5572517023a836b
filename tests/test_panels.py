"""Tests of the panel grid."""

from __future__ import annotations

import pytest

from helpers import RecordingDevice
from pyspd.panels import PANEL_INFORMATION, PANEL_ORIGINAL, PanelGeometry


def _split(nx: int, ny: int, **kwargs) -> tuple[PanelGeometry, RecordingDevice]:
    device = RecordingDevice()
    geometry = PanelGeometry()
    geometry.split(nx, ny, device, **kwargs)
    return geometry, device


def test_panels_fill_the_reduced_viewport() -> None:
    geometry, _ = _split(3, 2)

    assert geometry.x1[0, 0] == pytest.approx(geometry.orig_x1)
    assert geometry.x2[2, 0] == pytest.approx(geometry.orig_x2)
    assert geometry.y2[0, 0] == pytest.approx(geometry.orig_y2)
    assert geometry.y1[0, 1] == pytest.approx(geometry.orig_y1)


def test_panels_have_equal_size_and_do_not_overlap() -> None:
    geometry, _ = _split(3, 3)

    widths = geometry.x2 - geometry.x1
    heights = geometry.y2 - geometry.y1
    assert widths == pytest.approx(widths[0, 0])
    assert heights == pytest.approx(heights[0, 0])
    for i in range(2):
        assert geometry.x2[i, 0] < geometry.x1[i + 1, 0]
        assert geometry.y1[0, i] > geometry.y2[0, i + 1]


def test_abutted_panels_share_edges() -> None:
    geometry, _ = _split(2, 2, abut=True)

    assert geometry.x2[0, 0] == pytest.approx(geometry.x1[1, 0])
    assert geometry.y1[0, 0] == pytest.approx(geometry.y2[0, 1])


def test_information_strip_sits_above_the_panels() -> None:
    geometry, _ = _split(2, 2, info_lines=3)

    assert geometry.information_y2 == 1.0
    assert geometry.information_y1 > geometry.orig_y2
    assert geometry.orig_y2 < 1 - geometry.orig_y1


def test_original_viewport_is_measured_once() -> None:
    geometry, device = _split(1, 1)
    device.vp = (0.2, 0.8, 0.2, 0.8)
    orig_x1 = geometry.orig_x1

    geometry.split(2, 2, device)

    assert geometry.orig_x1 == orig_x1
    geometry.reset()
    geometry.split(2, 2, device)
    assert geometry.orig_x1 != orig_x1


def test_select_sentinels() -> None:
    geometry, device = _split(2, 2, info_lines=2)

    geometry.select(1, 1, device)
    assert device.vp == (geometry.x1[1, 1], geometry.x2[1, 1],
                         geometry.y1[1, 1], geometry.y2[1, 1])

    geometry.select(PANEL_ORIGINAL, PANEL_ORIGINAL, device)
    assert device.vp == (geometry.orig_x1, geometry.orig_x2,
                         geometry.orig_y1, geometry.orig_y2)

    geometry.select(PANEL_INFORMATION, PANEL_INFORMATION, device)
    assert device.vp[3] == 1.0

    geometry.select(1, PANEL_ORIGINAL, device)
    assert device.vp[2] == geometry.y2[1, 0]


def test_select_outside_the_grid_is_ignored() -> None:
    geometry, device = _split(2, 2)
    before = len(device.calls)

    geometry.select(2, 0, device)
    geometry.select(0, 5, device)

    assert len(device.calls) == before


def test_plotnum_is_row_major() -> None:
    geometry, _ = _split(3, 2)

    assert geometry.plotnum_to_xy(0) == (0, 0)
    assert geometry.plotnum_to_xy(2) == (2, 0)
    assert geometry.plotnum_to_xy(4) == (1, 1)
