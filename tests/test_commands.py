"""Tests of the command interpreter."""

from __future__ import annotations

import math

import pytest

from helpers import make_spectrum
from pyspd.commands import (
    Action, CommandContext, find_panel_type, interpret_spd_command,
    interpret_vis_command
)
from pyspd.controls import (
    SCALING_GROUP, XAXIS_GROUP, YAXIS_GROUP, PlotFlag, PlotOption, SpdControls,
    VisControls, VisPanelType
)
from pyspd.device.device_config import DeviceConfig
from pyspd.dsp.containers import AmpPhaseOptions


def _single_bit(value: PlotOption) -> bool:
    return bin(int(value)).count('1') <= 1


@pytest.fixture
def context() -> CommandContext:
    data = make_spectrum(windows=('f1', 'f2', 'z1'))
    return CommandContext(base_mjd=58000.01, data=data, has_server=True,
                          options=[o.copy() for o in data.options])


@pytest.mark.parametrize(
    'line',
    ['x', 'phase', 'amp', 'real', 'imag', 'delay', 'scale log', 'scale lin',
     'phase -10 10', 'x', 'ampl 0 5'],
)
def test_axis_groups_stay_exclusive(line, context) -> None:
    controls = SpdControls()

    for command in ('x', line, 'scale log', line):
        interpret_spd_command(command, controls, context)

    options = controls.plot_options
    assert _single_bit(options & XAXIS_GROUP)
    assert _single_bit(options & YAXIS_GROUP)
    assert _single_bit(options & SCALING_GROUP)


def test_x_twice_restores_options(context) -> None:
    controls = SpdControls()
    before = controls.plot_options

    first = interpret_spd_command('x', controls, context)
    assert controls.plot_options & PlotOption.FREQUENCY
    interpret_spd_command('x', controls, context)

    assert first.actions == Action.REFRESH
    assert controls.plot_options == before


def test_show_then_hide_restores_decoration(context) -> None:
    controls = SpdControls()
    before = controls.plot_options

    interpret_spd_command('show tvch', controls, context)
    assert controls.plot_options & PlotOption.TVCHANNELS
    interpret_spd_command('hide tvchannels', controls, context)

    assert controls.plot_options == before


def test_averaged_overlay_is_toggled(context) -> None:
    controls = SpdControls()

    interpret_spd_command('show av', controls, context)

    assert controls.plot_options & PlotOption.AVERAGED


def test_channel_without_arguments_clears_ranges(context) -> None:
    controls = SpdControls()
    pristine = SpdControls()

    interpret_spd_command('channel f2 500 100', controls, context)
    assert controls.channel_range_limit[1]
    assert controls.channel_range_min[1] == 100
    assert controls.channel_range_max[1] == 500
    interpret_spd_command('channel', controls, context)

    assert controls.channel_range_limit == pristine.channel_range_limit
    assert controls.channel_range_min == pristine.channel_range_min
    assert controls.channel_range_max == pristine.channel_range_max


def test_channel_range_applies_to_shown_windows(context) -> None:
    controls = SpdControls()
    controls.if_num_spec[1] = 0

    interpret_spd_command('ch 10 20', controls, context)

    assert controls.channel_range_limit[:3] == [True, False, True]


def test_yrange_is_swapped(context) -> None:
    controls = SpdControls()

    interpret_spd_command('phase 90 -90', controls, context)

    assert controls.yaxis_range_limit
    assert (controls.yaxis_range_min, controls.yaxis_range_max) == (-90, 90)


def test_select_aa_bb_is_select_star_without_cross_pols(context) -> None:
    star = SpdControls()
    pair = SpdControls()

    interpret_spd_command('select *', star, context)
    interpret_spd_command('sel aa,bb', pair, context)

    cross = PlotOption.POL_XY | PlotOption.POL_YX
    assert pair.plot_options == star.plot_options & ~cross


def test_select_window_labels(context) -> None:
    controls = SpdControls()

    interpret_spd_command('select z1 bb', controls, context)

    assert controls.if_num_spec[:3] == [0, 0, 1]
    assert controls.plot_options & PlotOption.POL_YY
    assert not controls.plot_options & PlotOption.POL_XX


def test_failed_command_leaves_controls_unchanged(context) -> None:
    controls = SpdControls()
    before = controls.copy()

    outcome = interpret_spd_command('select f9', controls, context)

    assert outcome.actions == Action.NONE
    assert 'f9' in outcome.message
    assert controls == before


def test_unknown_command(context) -> None:
    outcome = interpret_spd_command('frobnicate', SpdControls(), context)

    assert outcome.actions & Action.UNKNOWN
    assert 'frobnicate' in outcome.message


@pytest.mark.parametrize('line', ['qu', 'q', 'ex'])
def test_quit_needs_four_characters(line, context) -> None:
    outcome = interpret_spd_command(line, SpdControls(), context)

    assert not outcome.actions & Action.QUIT


def test_quit(context) -> None:
    assert interpret_spd_command('quit', SpdControls(), context).actions & Action.QUIT
    assert interpret_spd_command('EXIT', SpdControls(), context).actions & Action.QUIT


def test_on_off_flags(context) -> None:
    controls = SpdControls()

    outcome = interpret_spd_command('off acs', controls, context)
    assert outcome.actions == Action.REFRESH
    assert not controls.plot_flags & PlotFlag.AUTOCORRELATIONS

    outcome = interpret_spd_command('off acs', controls, context)
    assert outcome.actions == Action.NONE

    interpret_spd_command('on acs ab', controls, context)
    assert controls.plot_flags & PlotFlag.AUTOCORRELATIONS
    assert controls.plot_flags & PlotFlag.POL_XY


def test_array(context) -> None:
    controls = SpdControls()

    interpret_spd_command('array 1,3', controls, context)

    assert controls.array_spec == (1 << 1) | (1 << 3)


def test_nxy_checks_the_panel_limits(context) -> None:
    outcome = interpret_spd_command('nxy 3 4', SpdControls(), context)
    assert outcome.actions == Action.CHANGE_SURFACE
    assert (outcome.nx, outcome.ny) == (3, 4)

    outcome = interpret_spd_command('nxy 11 1', SpdControls(), context)
    assert outcome.actions == Action.NONE
    assert outcome.message


def test_navigation_needs_a_simulator(context) -> None:
    outcome = interpret_spd_command('forward', SpdControls(), context)
    assert outcome.actions == Action.NONE
    assert 'simulator' in outcome.message

    context.is_simulator = True
    assert interpret_spd_command('forw', SpdControls(), context).actions == Action.CYCLE_FWD
    assert interpret_spd_command('back', SpdControls(), context).actions == Action.CYCLE_BACK
    assert interpret_spd_command('lis', SpdControls(), context).actions == Action.LIST_CYCLES


def test_get_time_uses_the_date_of_the_current_cycle(context) -> None:
    outcome = interpret_spd_command('get time 00:14:24', SpdControls(), context)

    assert outcome.actions == Action.TIME_REQUEST
    assert outcome.mjd == pytest.approx(58000.01)


def test_get_time_with_date(context) -> None:
    outcome = interpret_spd_command('get t 2017-09-05 12:00', SpdControls(), context)

    assert outcome.mjd == pytest.approx(58001.5)


def test_get_time_without_known_date() -> None:
    outcome = interpret_spd_command('get time 12:00', SpdControls(), CommandContext())

    assert outcome.actions == Action.NONE
    assert 'date' in outcome.message


@pytest.mark.parametrize('line', ['get time 25:00', 'get time', 'get time 2017-13-01 01:00'])
def test_get_time_rejects_bad_input(line, context) -> None:
    outcome = interpret_spd_command(line, SpdControls(), context)

    assert outcome.actions == Action.NONE
    assert outcome.message


def test_delavg_changes_the_request_options(context) -> None:
    outcome = interpret_spd_command('delavg f2 8', SpdControls(), context)

    assert outcome.actions == Action.TIME_REQUEST
    assert outcome.mjd is None
    assert context.options[0].delay_averaging == [1, 8, 1]

    interpret_spd_command('delavg 4', SpdControls(), context)
    assert context.options[0].delay_averaging == [4, 4, 4]


def test_delavg_creates_options_when_none_are_known(context) -> None:
    context.options = []

    interpret_spd_command('delavg 2', SpdControls(), context)

    assert len(context.options) == 1
    assert isinstance(context.options[0], AmpPhaseOptions)
    assert context.options[0].delay_averaging == [2, 2, 2]


def test_delavg_without_a_server_is_rejected(context) -> None:
    context.has_server = False

    outcome = interpret_spd_command('delavg 4', SpdControls(), context)

    assert outcome.actions == Action.NONE
    assert 'needs a server' in outcome.message
    assert context.options[0].delay_averaging == [1, 1, 1]


def test_windows_beyond_the_configured_slots_are_rejected(context) -> None:
    DeviceConfig.set('max_windows', 2)
    controls = SpdControls()

    outcome = interpret_spd_command('select z1', controls, context)

    assert outcome.actions == Action.NONE
    assert 'window slots' in outcome.message
    assert controls.if_num_spec == [1, 1]


def test_dump_generates_a_name(context) -> None:
    outcome = interpret_spd_command('dump', SpdControls(), context)

    assert outcome.actions == Action.DUMP
    assert outcome.dump_filename.startswith('nspd_plot_')


def test_dump_with_filename(context) -> None:
    outcome = interpret_spd_command('dump plot.ps', SpdControls(), context)

    assert outcome.dump_filename == 'plot.ps'


def test_vis_plot_changes_surface() -> None:
    controls = VisControls()

    outcome = interpret_vis_command('plot amp systemp temp', controls, CommandContext())

    assert outcome.actions == Action.CHANGE_SURFACE
    assert (outcome.nx, outcome.ny) == (1, 3)
    assert controls.panel_type == [
        VisPanelType.AMPLITUDE, VisPanelType.SYSTEMP, VisPanelType.TEMPERATURE
    ]


def test_find_panel_type_prefers_exact_match() -> None:
    assert find_panel_type('systemp') == VisPanelType.SYSTEMP
    assert find_panel_type('systemp_c') == VisPanelType.SYSTEMP_COMPUTED
    assert find_panel_type('PH') == VisPanelType.PHASE


def test_vis_history() -> None:
    controls = VisControls()

    outcome = interpret_vis_command('history 1h 90m', controls, CommandContext())

    assert outcome.actions == Action.REFRESH
    assert controls.history_length == 60
    assert controls.history_start == 90
    assert outcome.message


def test_vis_history_rejects_zero() -> None:
    controls = VisControls()

    outcome = interpret_vis_command('history 0', controls, CommandContext())

    assert outcome.actions == Action.NONE
    assert controls.history_length == 20


def test_vis_select_and_sort() -> None:
    controls = VisControls()
    context = CommandContext()

    interpret_vis_command('select 12aa 3', controls, context)
    interpret_vis_command('sort', controls, context)

    assert len(controls.vis_products) == 2
    assert not context.sort_baselines


def test_vis_limits() -> None:
    controls = VisControls()

    interpret_vis_command('limits phase 180 -180', controls, CommandContext())
    assert controls.use_panel_limits == [False, True, False]
    assert controls.panel_limits_min[1] == -180

    outcome = interpret_vis_command('lim gtp 0 1', controls, CommandContext())
    assert outcome.actions == Action.NONE
    assert 'gtp' in outcome.message

    interpret_vis_command('limits phase', controls, CommandContext())
    assert controls.use_panel_limits == [False, False, False]


def test_vis_get_marks_a_time() -> None:
    context = CommandContext(base_mjd=58000.6)

    outcome = interpret_vis_command('get time 06:00', VisControls(), context)

    assert outcome.actions == Action.REFRESH
    assert context.marks == [pytest.approx(58000.25)]
    assert 'Marking' in outcome.message

    interpret_vis_command('get time 2017-09-05 12:00', VisControls(), context)
    assert context.marks == [pytest.approx(58001.5)]


def test_vis_band_assigns_windows() -> None:
    controls = VisControls()

    outcome = interpret_vis_command('band z1 F2', controls, CommandContext())
    assert outcome.actions == Action.REFRESH
    assert controls.visbands == ['z1', 'f2']

    outcome = interpret_vis_command('band 1', controls, CommandContext())
    assert 'window label' in outcome.message
    assert controls.visbands == ['z1', 'f2']


def test_vis_x_axis_stays_time() -> None:
    controls = VisControls()

    outcome = interpret_vis_command('x amp', controls, CommandContext())
    assert outcome.actions == Action.NONE
    assert 'cannot be the x-axis' in outcome.message

    outcome = interpret_vis_command('x time', controls, CommandContext())
    assert outcome.actions == Action.REFRESH
    assert controls.x_axis_type == PlotOption.TIME


def test_numbers_must_be_finite(context) -> None:
    controls = SpdControls()

    outcome = interpret_spd_command('phase nan 1', controls, context)

    assert outcome.actions == Action.NONE
    assert not controls.yaxis_range_limit
    assert not math.isnan(controls.yaxis_range_min)
