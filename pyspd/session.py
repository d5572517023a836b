"""Session controller of the interactive clients.

The session owns everything a running client needs: the graphics
device and its panel geometry, the plot controls, the displayed data,
the list of cycles known to the server and the pending actions.
Operator commands and server responses only set action bits; `step`
carries them out in a fixed order. `run` is the event loop waiting on
the terminal and the server socket.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
import math
import select
from typing import Final, Protocol

from pyspd import commands
from pyspd import converter
from pyspd import get_logger
from pyspd.commands import Action, CommandContext
from pyspd.controls import SpdControls, VisControls, reconcile_spd_controls
from pyspd.device.device_config import DeviceConfig
from pyspd.device.display_devices import device_for_filename
from pyspd.device.graphics import GraphicsDevice
from pyspd.dsp.containers import AmpPhaseOptions, SpectrumData, VisData
from pyspd.dsp.tsys import compile_tsys
from pyspd.errors import CodecError, DeviceError, NetworkError
from pyspd.network import RequestType, Response, ResponseType, ServerType
from pyspd.panels import PanelGeometry
from pyspd.plot_context import SpdPlotContext, VisPlotContext
from pyspd.spd_plot import make_spd_plot
from pyspd.vis_plot import make_vis_plot


log = get_logger(__name__)

SPD_INFO_LINES: Final[int] = 3
"""Text lines reserved above the SPD panels."""

IDLE_TIMEOUT: Final[float] = 0.1
"""Seconds between services of the screen device while no input arrives."""

DEFERRABLE: Final[Action] = (
    Action.CYCLE_FWD | Action.CYCLE_BACK | Action.LIST_CYCLES | Action.TIME_REQUEST
)
"""Actions that need the cycle list of a simulator server."""

RENDER_ERRORS = (ValueError, IndexError, RuntimeError, DeviceError)
"""Errors of a render that are reported without ending the session."""


class Mode(Enum):
    """Which client the session drives."""

    SPD = auto()
    VIS = auto()


class FetchState(Enum):
    """Progress of a spectrum request to a simulator server."""

    IDLE = auto()
    WAITING_LOADED = auto()
    REQUESTING_MJD = auto()


class Connection(Protocol):
    """What the session needs from a server connection."""

    def fileno(self) -> int: ...

    def send_request(
        self,
        request_type: RequestType,
        mjd: float | None = None,
        options: list[AmpPhaseOptions] | None = None
    ) -> None: ...

    def receive(self) -> Response: ...

    def close(self) -> None: ...


class Console(Protocol):
    """What the session needs from the operator terminal."""

    def fileno(self) -> int: ...

    def wakeup_fileno(self) -> int | None: ...

    def read_lines(self) -> list[str] | None: ...

    def show_prompt(self) -> None: ...

    def show_message(self, message: str) -> None: ...

    def check_resize(self) -> bool: ...


@dataclass
class CycleIndex:
    """Cycles a simulator server can deliver."""

    mjds: list[float] = field(default_factory=list)
    """MJD of each cycle in ascending order."""

    cycletime: float = 0.0
    """Nominal cycle time in days."""

    earliest: float = 0.0
    latest: float = 0.0
    """Time range of the server; equal values mean it is unknown."""

    @property
    def known(self) -> bool:
        return len(self.mjds) > 0

    def covers(self, mjd: float) -> bool:
        """Whether an MJD lies within the time range of the server."""
        if self.latest <= self.earliest:
            return True
        margin = self.cycletime / 2
        return self.earliest - margin <= mjd <= self.latest + margin

    def find(self, mjd: float) -> int:
        """Index of the cycle at an MJD, or -1."""
        for i, cycle_mjd in enumerate(self.mjds):
            if abs(mjd - cycle_mjd) < self.cycletime / 2:
                return i
        return -1

    def nearest(self, mjd: float) -> int:
        """Index of the closest cycle within two cycle times, or -1."""
        if not self.mjds:
            return -1
        i = min(range(len(self.mjds)), key=lambda k: abs(self.mjds[k] - mjd))
        return i if abs(self.mjds[i] - mjd) <= 2 * self.cycletime else -1

    def step(self, mjd: float | None, direction: int) -> int:
        """Index of the neighbouring cycle, clamped at both ends."""
        current = self.find(mjd) if mjd is not None else -1
        if current < 0:
            return 0 if direction > 0 else len(self.mjds) - 1
        return min(max(current + direction, 0), len(self.mjds) - 1)

    def listing(self, current_mjd: float | None = None) -> list[str]:
        """Cycle times with long runs shortened.

        Each run of cycles without gaps longer than two cycle times is
        shown by its first two and last two cycles; runs are separated
        by a line naming the gap.
        """
        current = self.find(current_mjd) if current_mjd is not None else -1
        runs: list[list[int]] = []
        for i, mjd in enumerate(self.mjds):
            if i == 0 or mjd - self.mjds[i - 1] > 2 * self.cycletime:
                runs.append([])
            runs[-1].append(i)
        lines = []
        for r, run in enumerate(runs):
            if r > 0:
                gap = (self.mjds[run[0]] - self.mjds[runs[r - 1][-1]]) * 1440
                lines.append(f'   ... gap of {converter.minutes_representation(gap)} ...')
            shown = run if len(run) <= 4 else run[:2] + [-1] + run[-2:]
            for i in shown:
                if i < 0:
                    lines.append(f'   ... {len(run) - 4} cycles ...')
                    continue
                marker = '*' if i == current else ' '
                lines.append(f' {marker} {i + 1:5d}  {converter.mjd_to_string(self.mjds[i])}')
        return lines


class Session:
    """State and event handling of one nspd or nvis client."""

    def __init__(
        self,
        mode: Mode,
        device: GraphicsDevice,
        console: Console,
        connection: Connection | None = None,
        device_name: str | None = None,
        dump_type: str | None = None
    ) -> None:
        self.mode = mode
        self.device = device
        self.console = console
        self.connection = connection
        self.device_name = device_name or DeviceConfig.screen_device
        self.panels = PanelGeometry()
        self.device_id = 0

        self.spd_controls = SpdControls()
        self.vis_controls = VisControls()
        self.nx = 1
        self.ny = 1 if mode == Mode.SPD else self.vis_controls.num_panels
        self.command_context = CommandContext(
            dump_type=dump_type or DeviceConfig.dump_type,
            client='nspd' if mode == Mode.SPD else 'nvis',
            has_server=connection is not None,
        )

        self.spectrum: SpectrumData | None = None
        self.vis_data: VisData | None = None
        self.server_type: ServerType | None = None
        self.cycles = CycleIndex()
        self.fetch_state = FetchState.IDLE

        self.action_required = Action.NONE
        self.pending_action = Action.NONE
        self.cmjd: float | None = None
        """MJD of the displayed cycle."""

        self.mjd_request: float | None = None
        """MJD of the last cycle requested."""

        self.requested_mjd: float | None = None
        self.dump_filename = ''

    @property
    def options(self) -> list[AmpPhaseOptions]:
        """Options table sent with spectrum requests."""
        return self.command_context.options

    def message(self, text: str) -> None:
        self.console.show_message(text)

    def start(self, data: SpectrumData | None = None) -> None:
        """Opens the screen device and asks the server what it is."""
        self.device_id = self.device.open(self.device_name)
        self.action_required |= Action.CHANGE_SURFACE
        if data is not None:
            self.set_spectrum(data)
        if self.connection is not None:
            self.connection.send_request(RequestType.SERVERTYPE)

    def close(self) -> None:
        if self.device_id:
            self.device.select(self.device_id)
            self.device.close()
            self.device_id = 0
            self.panels.reset()
        if self.connection is not None:
            self.connection.close()

    # Inputs.

    def handle_line(self, line: str) -> None:
        """Interprets an operator command and queues its actions."""
        if self.mode == Mode.SPD:
            outcome = commands.interpret_spd_command(line, self.spd_controls, self.command_context)
        else:
            outcome = commands.interpret_vis_command(line, self.vis_controls, self.command_context)
        if outcome.message:
            self.message(outcome.message)
        if outcome.actions & Action.CHANGE_SURFACE:
            self.nx, self.ny = outcome.nx, outcome.ny
        if outcome.actions & Action.TIME_REQUEST:
            self.requested_mjd = outcome.mjd
        if outcome.actions & Action.DUMP:
            self.dump_filename = outcome.dump_filename
        self.action_required |= outcome.actions & ~Action.UNKNOWN

    def set_spectrum(self, data: SpectrumData) -> None:
        self.spectrum = data
        self.command_context.data = data
        self.command_context.options[:] = [o.copy() for o in data.options]
        self.action_required |= Action.NEW_DATA

    def handle_response(self, response: Response) -> None:
        """Reacts to a message from the server."""
        kind = response.response_type
        if kind == ResponseType.SERVERTYPE:
            self.server_type = response.server_type
            self.command_context.is_simulator = self.server_type == ServerType.SIMULATOR
            if self.command_context.is_simulator:
                self.connection.send_request(RequestType.TIMERANGE)
                self.connection.send_request(RequestType.CYCLE_TIMES)
            if self.mode == Mode.SPD:
                self.connection.send_request(RequestType.CURRENT_SPECTRUM)
            else:
                self.connection.send_request(RequestType.CURRENT_VISDATA)
        elif kind in (ResponseType.CURRENT_SPECTRUM, ResponseType.LOADED_SPECTRUM):
            if self.mode == Mode.SPD and response.spectrum is not None:
                self.set_spectrum(response.spectrum)
            self.fetch_state = FetchState.IDLE
        elif kind == ResponseType.CURRENT_VISDATA:
            if self.mode == Mode.VIS and response.vis_data is not None:
                self.vis_data = response.vis_data
                self.action_required |= Action.NEW_DATA
        elif kind == ResponseType.SPECTRUM_LOADED:
            if self.fetch_state == FetchState.WAITING_LOADED:
                self.connection.send_request(RequestType.MJD_SPECTRUM, mjd=self.mjd_request)
                self.fetch_state = FetchState.REQUESTING_MJD
        elif kind == ResponseType.SPECTRUM_OUTSIDERANGE:
            self.fetch_state = FetchState.IDLE
            self.message('Requested time is outside the range of the server')
        elif kind == ResponseType.TIMERANGE:
            cycletime, earliest, latest = response.time_range
            self.cycles.cycletime = cycletime
            self.cycles.earliest = earliest
            self.cycles.latest = latest
        elif kind == ResponseType.CYCLE_TIMES:
            self.cycles.mjds = list(response.cycle_times)
            if self.cycles.cycletime <= 0 and len(self.cycles.mjds) > 1:
                self.cycles.cycletime = min(
                    b - a for a, b in zip(self.cycles.mjds, self.cycles.mjds[1:])
                )
            log.debug('Server knows %d cycles', len(self.cycles.mjds))
        elif kind in (ResponseType.USERREQUEST_VISDATA, ResponseType.USERNAME_EXISTS):
            # Another client changed the options; fetch the displayed cycle again.
            self.requested_mjd = self.cmjd
            self.action_required |= Action.TIME_REQUEST | Action.OMIT_OPTIONS
        elif kind == ResponseType.SHUTDOWN:
            self.message('Server is shutting down')
            self.action_required |= Action.QUIT

    # Actions.

    def step(self) -> bool:
        """Carries out the required actions; False once the session should end."""
        if self.action_required & Action.QUIT:
            return False

        if self.action_required & Action.NEW_DATA:
            self.action_required &= ~Action.NEW_DATA
            self._adopt_new_data()
            self.action_required |= Action.CHANGE_SURFACE

        if self.action_required & Action.CHANGE_SURFACE:
            self.action_required &= ~Action.CHANGE_SURFACE
            self._change_surface()
            self.action_required |= Action.REFRESH

        if self.action_required & (Action.REFRESH | Action.DUMP):
            if self.action_required & Action.REFRESH:
                self._render_safely(self.device_id, self.panels)
            if self.action_required & Action.DUMP:
                self._dump()
            self.action_required &= ~(Action.REFRESH | Action.DUMP)

        if self.pending_action and not self._needs_cycle_list(self.pending_action):
            self.action_required |= self.pending_action
            self.pending_action = Action.NONE

        deferred = self.action_required & DEFERRABLE
        if deferred and self.mode == Mode.SPD and self._needs_cycle_list(deferred):
            self.pending_action |= deferred | (self.action_required & Action.OMIT_OPTIONS)
            self.action_required &= ~(deferred | Action.OMIT_OPTIONS)
            log.debug('Deferring %r until the cycle list arrives', self.pending_action)

        if self.action_required & (Action.CYCLE_FWD | Action.CYCLE_BACK | Action.TIME_REQUEST):
            self._navigate()
        if self.action_required & Action.LIST_CYCLES:
            self.action_required &= ~Action.LIST_CYCLES
            for line in self.cycles.listing(self.cmjd):
                self.message(line)

        return not self.action_required & Action.QUIT

    def _needs_cycle_list(self, deferred: Action) -> bool:
        if self.cycles.known or self.connection is None:
            return False
        if deferred & (Action.CYCLE_FWD | Action.CYCLE_BACK | Action.LIST_CYCLES):
            return True
        return self.command_context.is_simulator or self.server_type is None

    def _adopt_new_data(self) -> None:
        if self.mode == Mode.SPD and self.spectrum is not None:
            self.cmjd = self.spectrum.mjd
            self.mjd_request = self.cmjd
            self.command_context.base_mjd = self.cmjd
            log.debug('New cycle at %s with %d pols',
                      converter.mjd_to_string(self.cmjd), self.spectrum.num_pols)
        elif self.mode == Mode.VIS and self.vis_data is not None and self.vis_data.cycles:
            self.cmjd = self.vis_data.cycles[-1].header.mjd
            self.command_context.base_mjd = self.cmjd

    def _change_surface(self) -> None:
        self.device.select(self.device_id)
        if self.mode == Mode.SPD:
            self.panels.split(
                self.nx, self.ny, self.device,
                margin_reduction=DeviceConfig.margin_reduction,
                info_lines=SPD_INFO_LINES
            )
        else:
            self.panels.split(
                1, max(self.vis_controls.num_panels, 1), self.device,
                margin_reduction=DeviceConfig.margin_reduction
            )

    def _render_safely(self, device_id: int, panels: PanelGeometry) -> bool:
        try:
            self.device.select(device_id)
            self._render(panels)
        except RENDER_ERRORS as ex:
            log.debug('Render failed', exc_info=True)
            self.message(f'Plotting failed: {ex}')
            return False
        return True

    def _render(self, panels: PanelGeometry) -> None:
        if self.mode == Mode.SPD:
            if self.spectrum is None:
                return
            controls = reconcile_spd_controls(self.spd_controls, self.spectrum)
            shown = range(min(self.spectrum.num_ifs, len(controls.if_num_spec)))
            windows = [w + 1 for w in shown if controls.if_num_spec[w]]
            compiled = None
            if self.spectrum.syscal is not None:
                compiled = compile_tsys(self.spectrum.syscal, windows, DeviceConfig.max_tsys_ifs)
            make_spd_plot(SpdPlotContext(
                self.device, panels, DeviceConfig.max_antennas, DeviceConfig.palette_size,
                controls=controls,
                data=self.spectrum,
                compiled_tsys=compiled,
                averaged_colour_offset=DeviceConfig.averaged_colour_offset,
            ))
        else:
            if self.vis_data is None:
                return
            make_vis_plot(VisPlotContext(
                self.device, panels, DeviceConfig.max_antennas, DeviceConfig.palette_size,
                controls=self.vis_controls,
                data=self.vis_data,
                sort_baselines=self.command_context.sort_baselines,
                times=self._mark_seconds(),
                tsys_second_antenna=DeviceConfig.tsys_second_antenna,
            ))

    def _mark_seconds(self) -> list[float]:
        """Marked MJDs in seconds since midnight of the first VIS cycle."""
        if not self.vis_data.cycles:
            return []
        day = math.floor(self.vis_data.cycles[0].header.mjd)
        return [(mjd - day) * converter.SECONDS_PER_DAY for mjd in self.command_context.marks]

    def _dump(self) -> None:
        """Renders into a temporary file device."""
        spec, filename = device_for_filename(
            self.dump_filename or 'dump', self.command_context.dump_type
        )
        try:
            dump_id = self.device.open(spec)
        except DeviceError as ex:
            self.message(f'Cannot open {filename}: {ex}')
            self.device.select(self.device_id)
            return
        panels = PanelGeometry()
        try:
            if self.mode == Mode.SPD:
                panels.split(self.nx, self.ny, self.device,
                             margin_reduction=DeviceConfig.margin_reduction,
                             info_lines=SPD_INFO_LINES)
            else:
                panels.split(1, max(self.vis_controls.num_panels, 1), self.device,
                             margin_reduction=DeviceConfig.margin_reduction)
            rendered = self._render_safely(dump_id, panels)
        finally:
            self.device.select(dump_id)
            self.device.close()
            self.device.select(self.device_id)
        if rendered:
            self.message(f'Plot written to {filename}')

    def _navigate(self) -> None:
        actions = self.action_required
        self.action_required &= ~(
            Action.CYCLE_FWD | Action.CYCLE_BACK | Action.TIME_REQUEST | Action.OMIT_OPTIONS
        )
        omit = bool(actions & Action.OMIT_OPTIONS)
        if self.connection is None:
            if actions & Action.TIME_REQUEST and not omit:
                self.message('No server to request data from')
            return
        if self.mode == Mode.VIS:
            self.connection.send_request(RequestType.CURRENT_VISDATA)
            return

        base = self.mjd_request if self.mjd_request is not None else self.cmjd
        if actions & (Action.CYCLE_FWD | Action.CYCLE_BACK):
            direction = 1 if actions & Action.CYCLE_FWD else -1
            target = self.cycles.mjds[self.cycles.step(base, direction)]
            if base is not None and self.cycles.find(base) == self.cycles.find(target):
                log.debug('Already at the %s cycle', 'last' if direction > 0 else 'first')
                return
        else:
            target = self.requested_mjd if self.requested_mjd is not None else base
            self.requested_mjd = None
            if target is None:
                self.message('No cycle has been displayed yet')
                return
            if not self.cycles.covers(target):
                self.message(
                    f'{converter.mjd_to_string(target)} is outside the time range of the '
                    f'server, {converter.mjd_to_string(self.cycles.earliest)} to '
                    f'{converter.mjd_to_string(self.cycles.latest)}'
                )
                return
            if self.cycles.known:
                i = self.cycles.nearest(target)
                if i < 0:
                    self.message(f'No cycle near {converter.mjd_to_string(target)}')
                    return
                target = self.cycles.mjds[i]
        self._request_spectrum(target, omit)

    def _request_spectrum(self, mjd: float, omit_options: bool) -> None:
        self.mjd_request = mjd
        options = [] if omit_options else self.options
        log.debug('Requesting cycle at %s', converter.mjd_to_string(mjd))
        self.connection.send_request(RequestType.SPECTRUM_MJD, mjd=mjd, options=options)
        self.fetch_state = FetchState.WAITING_LOADED

    # Event loop.

    def run(self) -> None:
        """Waits on the terminal and the server until the operator quits."""
        self.console.show_prompt()
        while self.step():
            sources = [self.console]
            if self.connection is not None:
                sources.append(self.connection)
            wakeup = self.console.wakeup_fileno()
            if wakeup is not None:
                sources.append(wakeup)
            readable, _, _ = select.select(sources, [], [], IDLE_TIMEOUT)
            self.device.process_events()
            if self.console.check_resize():
                self.console.show_prompt()
            if self.connection is not None and self.connection in readable:
                try:
                    self.handle_response(self.connection.receive())
                except (NetworkError, CodecError) as ex:
                    self.message(f'Lost the server: {ex}')
                    self.action_required |= Action.QUIT
            if self.console in readable:
                lines = self.console.read_lines()
                if lines is None:
                    self.action_required |= Action.QUIT
                    continue
                for line in lines:
                    self.handle_line(line)
                    if self.action_required & Action.QUIT:
                        break
                if lines and not self.action_required & Action.QUIT:
                    self.console.show_prompt()

