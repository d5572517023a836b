"""Interpretation of operator command lines.

A line is split into tokens after commas are turned into spaces; the
first token is matched against the command keywords allowing
abbreviations down to a per-command minimum length. Commands change
the plot controls and report what the session has to do next as a
combination of `Action` bits. A command that fails leaves the
controls as they were and returns a message instead.
"""

from dataclasses import dataclass, field
from enum import IntFlag
import math
from typing import Callable, Final

from pyspd import converter
from pyspd import files
from pyspd import get_logger
from pyspd import helpers
from pyspd.controls import (
    PlotFlag, PlotOption, SpdControls, VisControls, VisPanelType,
    interpret_vis_product
)
from pyspd.device.device_config import DeviceConfig
from pyspd.dsp.containers import AmpPhaseOptions, SpectrumData
from pyspd.errors import CommandError, DateUnknownError, OutOfRangeError, PyspdError


log = get_logger(__name__)


class Action(IntFlag):
    """What the session has to do after a command or a server response."""

    NONE = 0
    REFRESH = 1 << 0
    QUIT = 1 << 1
    CHANGE_SURFACE = 1 << 2
    NEW_DATA = 1 << 3
    CYCLE_FWD = 1 << 4
    CYCLE_BACK = 1 << 5
    LIST_CYCLES = 1 << 6
    TIME_REQUEST = 1 << 7
    OMIT_OPTIONS = 1 << 8
    UNKNOWN = 1 << 9
    DUMP = 1 << 10


@dataclass
class CommandOutcome:
    """Result of interpreting one command line."""

    actions: Action = Action.NONE
    """Actions requested by the command."""

    nx: int = 0
    """New number of panels across for CHANGE_SURFACE."""

    ny: int = 0
    """New number of panels down for CHANGE_SURFACE."""

    mjd: float | None = None
    """Requested MJD for TIME_REQUEST; None means the current cycle."""

    dump_filename: str = ''
    """File to dump the plot into."""

    message: str = ''
    """Text for the operator."""


@dataclass
class CommandContext:
    """Session state the interpreter reads, and for some commands changes."""

    is_simulator: bool = False
    """The server can navigate between cycles."""

    base_mjd: float | None = None
    """MJD of the displayed cycle; its date completes time-only requests."""

    data: SpectrumData | None = None
    """Displayed SPD data, used to resolve window labels."""

    options: list[AmpPhaseOptions] = field(default_factory=list)
    """Options table sent with the next spectrum request."""

    dump_type: str = 'png'
    """File type of dumps without a known extension."""

    client: str = 'nspd'
    """Client name used for generated dump file names."""

    sort_baselines: bool = True
    """VIS lines are ordered by baseline length."""

    has_server: bool = False
    """A data server is attached."""

    marks: list[float] = field(default_factory=list)
    """MJDs marked with guides on the VIS history."""


Handler = Callable[[list[str], object, CommandContext, CommandOutcome], None]

_POL_NAMES: Final[dict[str, PlotOption]] = {
    'aa': PlotOption.POL_XX,
    'bb': PlotOption.POL_YY,
    'ab': PlotOption.POL_XY,
    'ba': PlotOption.POL_YX,
}

_ONOFF_TARGETS: Final[dict[str, PlotFlag]] = {
    'acs': PlotFlag.AUTOCORRELATIONS,
    'ccs': PlotFlag.CROSSCORRELATIONS,
    'aa': PlotFlag.POL_XX,
    'bb': PlotFlag.POL_YY,
    'ab': PlotFlag.POL_XY,
    'ba': PlotFlag.POL_YX,
}

_YAXIS_COMMANDS: Final[list[tuple[str, int, PlotOption]]] = [
    ('phase', 1, PlotOption.PHASE),
    ('amplitude', 1, PlotOption.AMPLITUDE),
    ('real', 1, PlotOption.REAL),
    ('imaginary', 1, PlotOption.IMAG),
    ('delay', 5, PlotOption.DELAY),
]


def _parse_int(token: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise CommandError(f'"{token}" is not an integer') from None


def _parse_float(token: str) -> float:
    try:
        value = float(token)
    except ValueError:
        raise CommandError(f'"{token}" is not a number') from None
    if not math.isfinite(value):
        raise CommandError(f'"{token}" is not a finite number')
    return value


def _is_window_label(token: str) -> bool:
    return len(token) > 1 and token[0].lower() in 'fz' and token[1:].isdigit()


def _window_index(label: str, context: CommandContext) -> int:
    """Zero-based index of a window label in the displayed data."""
    if context.data is None:
        raise OutOfRangeError(f'Window {label} is unknown before data has arrived')
    window = context.data.header.find_if_name(label)
    if window < 1:
        raise OutOfRangeError(f'Window {label} is not present in the data')
    if window > DeviceConfig.max_windows:
        raise OutOfRangeError(
            f'Window {label} is beyond the {DeviceConfig.max_windows} window slots'
        )
    return window - 1


# SPD commands.

def _cmd_quit(args, controls, context, outcome) -> None:
    outcome.actions |= Action.QUIT


def _cmd_select(args: list[str], controls: SpdControls, context, outcome) -> None:
    pols = PlotOption(0)
    windows = []
    for token in args:
        lower = token.lower()
        if lower == '*':
            pols |= PlotOption.POL_XX | PlotOption.POL_YY | PlotOption.POL_XY | PlotOption.POL_YX
        elif lower in _POL_NAMES:
            pols |= _POL_NAMES[lower]
        elif _is_window_label(lower):
            windows.append(_window_index(lower, context))
        else:
            raise CommandError(f'Cannot select "{token}"')
    if not args:
        raise CommandError('select needs polarisations or windows')
    if pols:
        controls.change_plotcontrols(pols=pols)
    if windows:
        for w in range(len(controls.if_num_spec)):
            controls.if_num_spec[w] = 1 if w in windows else 0
    outcome.actions |= Action.REFRESH


def _shown_windows(controls: SpdControls, context: CommandContext) -> list[int]:
    num_ifs = context.data.num_ifs if context.data is not None else len(controls.if_num_spec)
    return [w for w in range(min(num_ifs, len(controls.if_num_spec))) if controls.if_num_spec[w]]


def _cmd_channel(args: list[str], controls: SpdControls, context, outcome) -> None:
    if len(args) == 0:
        controls.clear_channel_ranges()
    elif len(args) == 2:
        cmin, cmax = _parse_int(args[0]), _parse_int(args[1])
        for w in _shown_windows(controls, context):
            controls.set_channel_range(w, cmin, cmax)
    elif len(args) == 3:
        w = _window_index(args[0], context)
        cmin, cmax = _parse_int(args[1]), _parse_int(args[2])
        controls.set_channel_range(w, cmin, cmax)
    else:
        raise CommandError('Usage: channel [[window] min max]')
    outcome.actions |= Action.REFRESH


def _cmd_x(args, controls: SpdControls, context, outcome) -> None:
    if controls.plot_options & PlotOption.CHANNEL:
        controls.change_plotcontrols(xaxis=PlotOption.FREQUENCY)
    else:
        controls.change_plotcontrols(xaxis=PlotOption.CHANNEL)
    outcome.actions |= Action.REFRESH


def _yaxis_command(option: PlotOption) -> Handler:
    def handler(args: list[str], controls: SpdControls, context, outcome) -> None:
        if len(args) not in (0, 2):
            raise CommandError('Usage: <quantity> [min max]')
        limits = (_parse_float(args[0]), _parse_float(args[1])) if args else None
        controls.change_plotcontrols(yaxis=option)
        if limits is None:
            controls.clear_yrange()
        else:
            controls.set_yrange(*limits)
        outcome.actions |= Action.REFRESH
    return handler


def _cmd_scale(args: list[str], controls: SpdControls, context, outcome) -> None:
    if len(args) != 1:
        raise CommandError('Usage: scale logarithmic|linear')
    if helpers.minmatch('logarithmic', args[0], 3):
        controls.change_plotcontrols(scaling=PlotOption.AMPLITUDE_LOG)
    elif helpers.minmatch('linear', args[0], 3):
        controls.change_plotcontrols(scaling=PlotOption.AMPLITUDE_LINEAR)
    else:
        raise CommandError(f'Unknown scale "{args[0]}"')
    outcome.actions |= Action.REFRESH


def _cmd_array(args: list[str], controls, context, outcome) -> None:
    array_spec = helpers.interpret_array_string(''.join(args))
    if array_spec == 0:
        raise CommandError('array needs antenna numbers')
    controls.array_spec = array_spec
    outcome.actions |= Action.REFRESH


def _onoff_command(add: bool) -> Handler:
    def handler(args: list[str], controls: SpdControls, context, outcome) -> None:
        flags = PlotFlag(0)
        for token in args:
            if token.lower() not in _ONOFF_TARGETS:
                raise CommandError(f'Cannot switch "{token}"')
            flags |= _ONOFF_TARGETS[token.lower()]
        if not flags:
            raise CommandError('Usage: on|off acs|ccs|aa|bb|ab|ba ...')
        if controls.change_plotflags(flags, add):
            outcome.actions |= Action.REFRESH
    return handler


def _cmd_nxy(args: list[str], controls, context, outcome) -> None:
    if len(args) != 2:
        raise CommandError('Usage: nxy <nx> <ny>')
    nx, ny = _parse_int(args[0]), _parse_int(args[1])
    if not (1 <= nx <= DeviceConfig.max_x_panels and 1 <= ny <= DeviceConfig.max_y_panels):
        raise OutOfRangeError(
            f'Panels must be within 1..{DeviceConfig.max_x_panels} x '
            f'1..{DeviceConfig.max_y_panels}'
        )
    outcome.nx, outcome.ny = nx, ny
    outcome.actions |= Action.CHANGE_SURFACE


def _navigation_command(action: Action) -> Handler:
    def handler(args, controls, context: CommandContext, outcome) -> None:
        if not context.is_simulator:
            outcome.message = 'Cycle navigation needs a simulator server'
            return
        outcome.actions |= action
    return handler


def _time_argument(args: list[str], context: CommandContext) -> float:
    """MJD of 'time [YYYY-MM-DD] HH:MM[:SS]' arguments."""
    if not args or not helpers.minmatch('time', args[0], 1) or len(args) not in (2, 3):
        raise CommandError('Usage: get time [YYYY-MM-DD] HH:MM[:SS]')
    try:
        seconds = converter.string_to_seconds(args[-1])
        if len(args) == 3:
            year, month, day = converter.parse_date(args[1])
            mjd = converter.cal2mjd(day, month, year, seconds)
        else:
            if context.base_mjd is None:
                raise DateUnknownError('No date is known yet, give the date too')
            mjd = math.floor(context.base_mjd) + seconds / converter.SECONDS_PER_DAY
    except ValueError as ex:
        raise CommandError(str(ex)) from None
    return mjd


def _cmd_get(args: list[str], controls, context: CommandContext, outcome) -> None:
    outcome.mjd = _time_argument(args, context)
    outcome.actions |= Action.TIME_REQUEST


def _decoration_command(enable: bool) -> Handler:
    def handler(args: list[str], controls: SpdControls, context, outcome) -> None:
        if len(args) != 1:
            raise CommandError('Usage: show|hide tvchannels|averaged')
        if helpers.minmatch('tvchannels', args[0], 4):
            option = PlotOption.TVCHANNELS
        elif helpers.minmatch('averaged', args[0], 2):
            option = PlotOption.AVERAGED
        else:
            raise CommandError(f'Cannot show or hide "{args[0]}"')
        controls.toggle_option(option, enable)
        outcome.actions |= Action.REFRESH
    return handler


def _cmd_delavg(args: list[str], controls, context: CommandContext, outcome) -> None:
    if not context.has_server:
        raise CommandError('delavg changes the server computation and needs a server')
    if len(args) == 1:
        windows = None
        navg = _parse_int(args[0])
    elif len(args) == 2:
        windows = [_window_index(args[0], context)]
        navg = _parse_int(args[1])
    else:
        raise CommandError('Usage: delavg [window] <nchannels>')
    if navg < 1:
        raise OutOfRangeError('Delay averaging must be at least 1')
    if not context.options:
        context.options.append(AmpPhaseOptions())
    num_ifs = context.data.num_ifs if context.data is not None else 0
    for record in context.options:
        record.ensure_windows(max(num_ifs, record.num_ifs, 1))
        for w in windows if windows is not None else range(record.num_ifs):
            if w < record.num_ifs:
                record.delay_averaging[w] = navg
    outcome.actions |= Action.TIME_REQUEST


def _cmd_dump(args: list[str], controls, context: CommandContext, outcome) -> None:
    if len(args) > 1:
        raise CommandError('Usage: dump [filename]')
    outcome.dump_filename = args[0] if args else files.dump_filename(context.client)
    outcome.actions |= Action.DUMP


# VIS commands.

def find_panel_type(token: str) -> VisPanelType:
    """Resolves an abbreviated panel name, preferring exact matches."""
    matches = [p for p in VisPanelType if helpers.minmatch(p.keyword, token, 2)]
    for panel_type in matches:
        if panel_type.keyword == token.lower():
            return panel_type
    if not matches:
        raise CommandError(f'Unknown panel type "{token}"')
    return matches[0]


def _cmd_plot(args: list[str], controls: VisControls, context, outcome) -> None:
    if not args:
        raise CommandError('plot needs at least one panel type')
    panel_types = [find_panel_type(token) for token in args]
    if len(panel_types) > DeviceConfig.max_y_panels:
        raise OutOfRangeError(f'At most {DeviceConfig.max_y_panels} panels can be shown')
    controls.set_panels(panel_types)
    outcome.nx, outcome.ny = 1, len(panel_types)
    outcome.actions |= Action.CHANGE_SURFACE


def _cmd_history(args: list[str], controls: VisControls, context, outcome) -> None:
    if len(args) not in (1, 2):
        raise CommandError('Usage: history <length> [start]')
    try:
        length = converter.string_to_minutes(args[0])
        start = converter.string_to_minutes(args[1]) if len(args) == 2 else length
    except ValueError as ex:
        raise CommandError(str(ex)) from None
    if length <= 0 or start <= 0:
        raise OutOfRangeError('History length and start must be positive')
    controls.history_length = length
    controls.history_start = start
    outcome.message = (
        f'Showing {converter.minutes_representation(length)} starting '
        f'{converter.minutes_representation(start)} ago'
    )
    outcome.actions |= Action.REFRESH


def _cmd_vis_select(args: list[str], controls: VisControls, context, outcome) -> None:
    if not args:
        raise CommandError('select needs at least one product')
    controls.vis_products = [interpret_vis_product(token) for token in args]
    outcome.actions |= Action.REFRESH


def _cmd_sort(args, controls, context: CommandContext, outcome) -> None:
    context.sort_baselines = not context.sort_baselines
    outcome.actions |= Action.REFRESH


def _cmd_limits(args: list[str], controls: VisControls, context, outcome) -> None:
    if len(args) not in (1, 3):
        raise CommandError('Usage: limits <panel> [min max]')
    panel_type = find_panel_type(args[0])
    if len(args) == 3:
        found = controls.change_limits(
            panel_type, True, _parse_float(args[1]), _parse_float(args[2])
        )
    else:
        found = controls.change_limits(panel_type, False)
    if not found:
        raise OutOfRangeError(f'No {panel_type.keyword} panel is shown')
    outcome.actions |= Action.REFRESH


_VIS_X_NAMES: Final[list[tuple[str, PlotOption]]] = [
    ('time', PlotOption.TIME),
    ('channel', PlotOption.CHANNEL),
    ('frequency', PlotOption.FREQUENCY),
    ('amplitude', PlotOption.AMPLITUDE),
    ('phase', PlotOption.PHASE),
]


def _cmd_vis_x(args: list[str], controls: VisControls, context, outcome) -> None:
    if len(args) != 1:
        raise CommandError('Usage: x <quantity>')
    matches = [option for name, option in _VIS_X_NAMES if helpers.minmatch(name, args[0], 1)]
    if not matches:
        raise CommandError(f'Unknown x-axis quantity "{args[0]}"')
    try:
        controls.set_x_axis(matches[0])
    except ValueError as ex:
        raise OutOfRangeError(str(ex)) from None
    outcome.actions |= Action.REFRESH


def _cmd_vis_get(args: list[str], controls, context: CommandContext, outcome) -> None:
    mjd = _time_argument(args, context)
    context.marks[:] = [mjd]
    outcome.message = f'Marking {converter.mjd_to_string(mjd)}'
    outcome.actions |= Action.REFRESH


def _cmd_band(args: list[str], controls: VisControls, context, outcome) -> None:
    if len(args) not in (1, 2):
        raise CommandError('Usage: band <window> [window]')
    for token in args:
        if not _is_window_label(token):
            raise CommandError(f'"{token}" is not a window label like f1 or z2')
    controls.change_visbands(args)
    outcome.actions |= Action.REFRESH


SPD_COMMANDS: Final[list[tuple[str, int, Handler]]] = [
    ('quit', 4, _cmd_quit),
    ('exit', 4, _cmd_quit),
    ('select', 3, _cmd_select),
    ('channel', 2, _cmd_channel),
    ('x', 1, _cmd_x),
    *[(keyword, minlength, _yaxis_command(option))
      for keyword, minlength, option in _YAXIS_COMMANDS],
    ('scale', 3, _cmd_scale),
    ('array', 3, _cmd_array),
    ('on', 2, _onoff_command(True)),
    ('off', 3, _onoff_command(False)),
    ('nxy', 3, _cmd_nxy),
    ('forward', 4, _navigation_command(Action.CYCLE_FWD)),
    ('backward', 4, _navigation_command(Action.CYCLE_BACK)),
    ('list', 3, _navigation_command(Action.LIST_CYCLES)),
    ('get', 3, _cmd_get),
    ('show', 3, _decoration_command(True)),
    ('hide', 3, _decoration_command(False)),
    ('delavg', 5, _cmd_delavg),
    ('dump', 4, _cmd_dump),
]
"""SPD keywords with their minimum abbreviation and handler."""

VIS_COMMANDS: Final[list[tuple[str, int, Handler]]] = [
    ('quit', 4, _cmd_quit),
    ('exit', 4, _cmd_quit),
    ('plot', 4, _cmd_plot),
    ('history', 4, _cmd_history),
    ('select', 3, _cmd_vis_select),
    ('sort', 4, _cmd_sort),
    ('limits', 3, _cmd_limits),
    ('array', 3, _cmd_array),
    ('x', 1, _cmd_vis_x),
    ('get', 3, _cmd_vis_get),
    ('band', 4, _cmd_band),
    ('dump', 4, _cmd_dump),
]
"""VIS keywords with their minimum abbreviation and handler."""


def _interpret(
    line: str,
    controls: SpdControls | VisControls,
    context: CommandContext,
    table: list[tuple[str, int, Handler]]
) -> CommandOutcome:
    outcome = CommandOutcome()
    tokens = helpers.tokenize(line)
    if not tokens:
        return outcome
    command, args = tokens[0], tokens[1:]
    for keyword, minlength, handler in table:
        if helpers.minmatch(keyword, command, minlength):
            # Work on a copy so a failing command changes nothing.
            work = controls.copy() if isinstance(controls, SpdControls) else _copy_vis(controls)
            try:
                handler(args, work, context, outcome)
            except PyspdError as ex:
                log.debug('Command "%s" failed: %s', line, ex)
                return CommandOutcome(message=str(ex))
            vars(controls).update(vars(work))
            return outcome
    outcome.actions |= Action.UNKNOWN
    outcome.message = f'Unknown command "{command}"'
    return outcome


def _copy_vis(controls: VisControls) -> VisControls:
    return VisControls(
        list(controls.panel_type),
        list(controls.use_panel_limits),
        list(controls.panel_limits_min),
        list(controls.panel_limits_max),
        list(controls.vis_products),
        controls.array_spec,
        controls.plot_options,
        list(controls.visbands),
        controls.cycletime,
        controls.history_length,
        controls.history_start,
        controls.reference_antenna,
        controls.device_id,
    )


def interpret_spd_command(
    line: str, controls: SpdControls, context: CommandContext
) -> CommandOutcome:
    """Interprets one SPD command line, updating `controls` on success."""
    return _interpret(line, controls, context, SPD_COMMANDS)


def interpret_vis_command(
    line: str, controls: VisControls, context: CommandContext
) -> CommandOutcome:
    """Interprets one VIS command line, updating `controls` on success."""
    return _interpret(line, controls, context, VIS_COMMANDS)
