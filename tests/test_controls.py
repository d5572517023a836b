"""Tests of the SPD and VIS plot controls."""

from __future__ import annotations

import pytest

from helpers import make_spectrum
from pyspd.controls import (
    SCALING_GROUP, VIS_PLOT_IF1, VIS_PLOT_IF2, XAXIS_GROUP, YAXIS_GROUP,
    PlotOption, SpdControls, VisControls, VisPanelType, interpret_vis_product,
    reconcile_spd_controls
)
from pyspd.device.device_config import DeviceConfig
from pyspd.errors import CommandError


def _bits(value: PlotOption) -> int:
    return bin(int(value)).count('1')


def test_default_spd_controls() -> None:
    controls = SpdControls()

    assert controls.plot_options & PlotOption.CHANNEL
    assert controls.plot_options & PlotOption.AMPLITUDE
    assert controls.plot_options & PlotOption.AMPLITUDE_LINEAR
    assert controls.npols == 2


def test_window_slots_follow_the_configuration() -> None:
    DeviceConfig.set('max_windows', 4)

    controls = SpdControls()

    assert controls.if_num_spec == [1, 1, 1, 1]
    assert controls.channel_range_limit == [False] * 4
    assert len(controls.channel_range_min) == len(controls.channel_range_max) == 4


def test_change_plotcontrols_keeps_groups_exclusive() -> None:
    controls = SpdControls()

    controls.change_plotcontrols(xaxis=PlotOption.FREQUENCY, yaxis=PlotOption.PHASE)
    controls.change_plotcontrols(scaling=PlotOption.AMPLITUDE_LOG)

    assert _bits(controls.plot_options & XAXIS_GROUP) == 1
    assert _bits(controls.plot_options & YAXIS_GROUP) == 1
    assert _bits(controls.plot_options & SCALING_GROUP) == 1
    assert controls.plot_options & PlotOption.FREQUENCY
    assert controls.plot_options & PlotOption.PHASE
    assert controls.plot_options & PlotOption.AMPLITUDE_LOG


def test_ranges_are_stored_ascending() -> None:
    controls = SpdControls()

    controls.set_channel_range(0, 300, 100)
    controls.set_yrange(5.0, -5.0)

    assert (controls.channel_range_min[0], controls.channel_range_max[0]) == (100, 300)
    assert (controls.yaxis_range_min, controls.yaxis_range_max) == (-5.0, 5.0)
    assert controls.channel_range_limit[0]
    assert controls.yaxis_range_limit


def test_copy_is_independent() -> None:
    controls = SpdControls()
    copy = controls.copy()

    copy.if_num_spec[0] = 0
    copy.set_channel_range(1, 1, 2)

    assert controls.if_num_spec[0] == 1
    assert not controls.channel_range_limit[1]


def test_reconcile_drops_windows_missing_from_the_data() -> None:
    controls = SpdControls()
    controls.set_channel_range(3, 10, 20)
    data = make_spectrum(windows=('f1', 'f2'))

    reconciled = reconcile_spd_controls(controls, data)

    assert reconciled.if_num_spec[:3] == [1, 1, 0]
    assert not reconciled.channel_range_limit[3]
    assert controls.channel_range_limit[3]


@pytest.mark.parametrize(
    'product, antennas, if_spec, pols',
    [
        ('12aa', 0b110, VIS_PLOT_IF1, PlotOption.POL_XX),
        ('3b', 0b1000, VIS_PLOT_IF1, PlotOption.POL_YY | PlotOption.POL_XY),
        ('cd', 0b1111110, VIS_PLOT_IF2, PlotOption.POL_XY),
        ('*', 0b1111110, VIS_PLOT_IF1 | VIS_PLOT_IF2,
         PlotOption.POL_XX | PlotOption.POL_YY | PlotOption.POL_XY),
    ],
)
def test_interpret_vis_product(product, antennas, if_spec, pols) -> None:
    result = interpret_vis_product(product)

    assert result.antenna_spec == antennas
    assert result.if_spec == if_spec
    assert result.pol_spec == pols


@pytest.mark.parametrize('product', ['12xx', '9aa', 'e'])
def test_interpret_vis_product_rejects_garbage(product) -> None:
    with pytest.raises(CommandError):
        interpret_vis_product(product)


def test_vis_panels_keep_limits_of_surviving_types() -> None:
    controls = VisControls()
    controls.change_limits(VisPanelType.PHASE, True, 180, -180)

    controls.set_panels([VisPanelType.PHASE, VisPanelType.SYSTEMP])

    assert controls.use_panel_limits == [True, False]
    assert controls.panel_limits_min[0] == -180
    assert controls.panel_limits_max[0] == 180


def test_change_limits_reports_missing_panel() -> None:
    controls = VisControls()

    assert not controls.change_limits(VisPanelType.GTP, True, 0, 1)



def test_only_time_can_be_the_vis_x_axis() -> None:
    controls = VisControls()

    with pytest.raises(ValueError, match='amplitude cannot be the x-axis'):
        controls.set_x_axis(PlotOption.AMPLITUDE)
    controls.set_x_axis(PlotOption.TIME)
    assert controls.x_axis_type == PlotOption.TIME
