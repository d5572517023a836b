"""Tests of the VIS page composer."""

from __future__ import annotations

import pytest

from helpers import RecordingDevice, make_header, make_vis_data
from pyspd.controls import VisControls, VisPanelType, interpret_vis_product
from pyspd.device import graphics
from pyspd.dsp.containers import POL_XX, POL_XY, POL_YY
from pyspd.panels import PanelGeometry
from pyspd.plot_context import VisPlotContext
from pyspd.vis_plot import (
    MAX_VIS_LINES, PanelLines, VisLine, build_vis_lines, make_vis_plot,
    panel_yrange, split_segments, time_window, tsys_antenna
)

START = 36000.0
"""10:00 UT."""


def _controls(panels: list[VisPanelType], products: list[str]) -> VisControls:
    controls = VisControls()
    controls.set_panels(panels)
    controls.vis_products = [interpret_vis_product(p) for p in products]
    return controls


def _render(controls: VisControls, data, **kwargs) -> RecordingDevice:
    device = RecordingDevice()
    device.open('/xs')
    panels = PanelGeometry()
    panels.split(1, controls.num_panels, device)
    make_vis_plot(VisPlotContext(device, panels, controls=controls, data=data, **kwargs))
    return device


def _data_lines(device: RecordingDevice) -> list:
    return [line for line in device.lines if line.linestyle != graphics.LINESTYLE_DASHED
            and line.colour != graphics.GUIDE_COLOUR]


def test_split_segments_breaks_at_gaps() -> None:
    xs = [0.0, 10.0, 20.0, 50.0, 60.0, 61.0]
    ys = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]

    segments = split_segments(xs, ys, [10.0] * 6)

    assert segments == [([0.0, 10.0, 20.0], [1.0, 2.0, 3.0]),
                        ([50.0, 60.0, 61.0], [4.0, 5.0, 6.0])]


def test_split_segments_uses_the_cycle_time_at_each_point() -> None:
    xs = [0.0, 10.0, 40.0]

    assert len(split_segments(xs, [0.0] * 3, [10.0, 30.0, 30.0])) == 1
    assert len(split_segments(xs, [0.0] * 3, [10.0, 10.0, 30.0])) == 2
    assert split_segments([], [], []) == []


def test_rendered_lines_never_bridge_gaps() -> None:
    times = [START + 10 * k for k in range(4)] + [START + 100 + 10 * k for k in range(3)]
    data = make_vis_data(times)
    controls = _controls([VisPanelType.AMPLITUDE], ['12aa'])

    device = _render(controls, data)

    lines = _data_lines(device)
    assert len(lines) == 2
    assert len(lines[0].xs) == 4
    assert len(lines[1].xs) == 3
    assert lines[1].xs[0] - lines[0].xs[-1] == pytest.approx(70.0)


def test_flagged_points_are_skipped() -> None:
    data = make_vis_data([START, START + 10, START + 20])
    data.cycles[1] = make_vis_data([START + 10], flagged=[(1, 2)]).cycles[0]
    controls = _controls([VisPanelType.AMPLITUDE], ['12aa'])

    lines = _data_lines(_render(controls, data))

    # 20 s apart is more than 1.5 cycle times.
    assert [len(line.xs) for line in lines] == [1, 1]


def test_at_most_sixteen_lines_per_panel() -> None:
    data = make_vis_data([START, START + 10], antennas=range(1, 7))
    controls = _controls([VisPanelType.AMPLITUDE], ['aa', 'bb'])

    device = _render(controls, data)

    assert len(_data_lines(device)) == MAX_VIS_LINES
    labels = [t for t in device.texts if t[0] == 'B' and t[1] == 4]
    assert len(labels) == MAX_VIS_LINES


def test_build_vis_lines_sorts_by_baseline_length() -> None:
    controls = _controls([VisPanelType.AMPLITUDE], ['aa', 'bb'])

    lines = build_vis_lines(controls, make_header(), 6, sort_baselines=True)

    assert len(lines) == MAX_VIS_LINES
    lengths = [line.baseline_length for line in lines]
    assert lengths == sorted(lengths)
    assert [line.colour for line in lines] == list(range(1, MAX_VIS_LINES + 1))
    assert all(not line.is_auto for line in lines)


def test_build_vis_lines_keeps_product_order_unsorted() -> None:
    controls = _controls([VisPanelType.AMPLITUDE], ['16aa', '12aa'])

    lines = build_vis_lines(controls, make_header(), 6, sort_baselines=False)

    assert [line.label for line in lines] == ['16AA', '12AA']
    sorted_lines = build_vis_lines(controls, make_header(), 6, sort_baselines=True)
    assert [line.label for line in sorted_lines] == ['12AA', '16AA']


def test_single_antenna_selects_its_baselines() -> None:
    controls = _controls([VisPanelType.AMPLITUDE], ['3aa'])
    controls.array_spec = 0b11110

    lines = build_vis_lines(controls, make_header(), 6, sort_baselines=False)

    assert [(line.ant1, line.ant2) for line in lines] == [(1, 3), (2, 3), (3, 4)]


def test_auto_lines_for_tsys_panels() -> None:
    controls = _controls([VisPanelType.AMPLITUDE, VisPanelType.SYSTEMP], ['1a', '1c'])
    controls.array_spec = 0b10

    lines = build_vis_lines(controls, make_header(), 6, sort_baselines=False)

    assert [(line.label, line.pol) for line in lines] == [
        ('11AB', POL_XY), ('11AA', POL_XX), ('11CD', POL_XY), ('11CC', POL_XX)
    ]
    styles = [line.line_style for line in lines]
    assert len(set(styles)) == 4
    assert lines[0].shown_on(VisPanelType.AMPLITUDE)
    assert not lines[0].shown_on(VisPanelType.SYSTEMP)
    assert lines[1].shown_on(VisPanelType.SYSTEMP)
    assert not lines[1].shown_on(VisPanelType.TEMPERATURE)


def test_tsys_antenna() -> None:
    line = VisLine(1, 6, 'f1', 1, POL_XX, '16AA', 500.0)

    assert tsys_antenna(line, 6) == 6
    assert tsys_antenna(line, 5) == 1


def test_tsys_panel_uses_the_configured_antenna() -> None:
    data = make_vis_data([START, START + 10], antennas=range(1, 7))
    controls = _controls([VisPanelType.SYSTEMP], ['16aa'])

    default = _data_lines(_render(controls, data))
    configured = _data_lines(_render(controls, data, tsys_second_antenna=4))

    # Lines are 11AA, 66AA, 16AA; online Tsys of antenna k is 50 + k - 1.
    assert [line.ys[0] for line in default if line.colour == 3] == [55.0]
    assert [line.ys[0] for line in configured if line.colour == 3] == [50.0]


def test_site_panels_draw_one_line() -> None:
    data = make_vis_data([START, START + 10, START + 20])
    controls = _controls([VisPanelType.TEMPERATURE, VisPanelType.PRESSURE], ['aa'])

    lines = _data_lines(_render(controls, data))

    assert len(lines) == 2
    assert lines[0].ys == pytest.approx([25.0, 25.0 + 10 / 3600, 25.0 + 20 / 3600])
    assert lines[1].ys == [970.0, 970.0, 970.0]


def test_time_window_follows_the_history() -> None:
    times = [START + 60 * k for k in range(11)]
    data = make_vis_data(times)
    controls = _controls([VisPanelType.AMPLITUDE], ['12aa'])
    lines = build_vis_lines(controls, data.cycles[0].header, 6, True)

    assert time_window(data.cycles, lines, controls, data.cycles[0].header.mjd) == \
        pytest.approx((START, START + 600 + 30))

    controls.history_start = 4
    controls.history_length = 2
    min_x, max_x = time_window(data.cycles, lines, controls, data.cycles[0].header.mjd)
    assert min_x == pytest.approx(START + 360)
    assert max_x == pytest.approx(START + 480 + 6)


def test_panel_yrange() -> None:
    controls = _controls([VisPanelType.AMPLITUDE, VisPanelType.PHASE], ['aa'])
    points = PanelLines(ys=[[0.1, 10.0]])

    assert panel_yrange(points, VisPanelType.AMPLITUDE, controls, 0) == \
        pytest.approx((0.0, 10.495))
    assert panel_yrange(points, VisPanelType.PHASE, controls, 1) == \
        pytest.approx((-0.395, 10.495))

    controls.change_limits(VisPanelType.PHASE, True, -180, 180)
    assert panel_yrange(points, VisPanelType.PHASE, controls, 1) == (-180, 180)


def test_axes_and_labels() -> None:
    data = make_vis_data([START, START + 10])
    controls = _controls([VisPanelType.AMPLITUDE, VisPanelType.PHASE], ['12aa'])

    device = _render(controls, data, times=[START + 5])

    boxes = [call for call in device.calls if call[0] == 'box']
    assert boxes == [('box', 'BCTSZ', 'BCNTS'), ('box', 'BCNTSZH', 'BCMTS')]
    texts = device.text_strings()
    assert 'UT' in texts
    assert '12AA' in texts
    assert 'AA,BB = f1' in texts
    assert 'CC,DD = f2' in texts
    guides = [line for line in device.lines if line.colour == graphics.GUIDE_COLOUR]
    assert [g.xs for g in guides] == [[START + 5, START + 5]] * 2


def test_guides_stay_apart_from_every_line_colour() -> None:
    data = make_vis_data([START, START + 10])
    controls = _controls([VisPanelType.AMPLITUDE], ['aa', 'bb'])

    device = _render(controls, data, times=[START + 5])

    dashed = [line for line in device.lines if line.linestyle == graphics.LINESTYLE_DASHED]
    assert [line.colour for line in dashed] == [graphics.GUIDE_COLOUR]
    line_colours = {line.colour for line in device.lines
                    if line.linestyle != graphics.LINESTYLE_DASHED}
    assert graphics.GUIDE_COLOUR not in line_colours
    assert line_colours <= set(range(1, MAX_VIS_LINES + 1))


def test_yy_only_products_use_band_two_labels() -> None:
    controls = _controls([VisPanelType.AMPLITUDE], ['12dd'])

    lines = build_vis_lines(controls, make_header(), 6, True)

    assert [(line.label, line.pol, line.if_label) for line in lines] == [
        ('12DD', POL_YY, 'f2')
    ]
