"""Fakes and synthetic data shared by the tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from pyspd import converter
from pyspd.device.graphics import Units
from pyspd.dsp.containers import (
    POL_XX, POL_YY, AmpPhaseBlock, AmpPhaseOptions, MetInfo, ScanHeader,
    SpectrumData, SyscalData, VisCycle, VisData, VisQuantity, ants_to_base
)
from pyspd.network import Request, RequestType, Response

OBS_DATE = '2017-09-04'
"""Date of MJD 58000."""

CHAR_WIDTH = 0.01
LINE_HEIGHT = 0.02


@dataclass
class DrawnLine:
    colour: int
    linestyle: int
    xs: list[float]
    ys: list[float]
    viewport: tuple[float, float, float, float]
    window: tuple[float, float, float, float]


@dataclass
class RecordingDevice:
    """Graphics device that remembers every call instead of drawing."""

    calls: list[tuple] = field(default_factory=list)
    lines: list[DrawnLine] = field(default_factory=list)
    texts: list[tuple] = field(default_factory=list)
    opened: list[str] = field(default_factory=list)
    closed: list[int] = field(default_factory=list)
    current: int | None = None
    vp: tuple[float, float, float, float] = (0.05, 0.95, 0.08, 0.92)
    win: tuple[float, float, float, float] = (0.0, 1.0, 0.0, 1.0)
    colour: int = 1
    linestyle: int = 1
    charheight: float = 1.0
    fail_open: bool = False
    events: int = 0

    def open(self, name: str) -> int:
        if self.fail_open:
            from pyspd.errors import DeviceError
            raise DeviceError(f'Cannot open {name}')
        self.opened.append(name)
        self.current = len(self.opened)
        self.vp = (0.05, 0.95, 0.08, 0.92)
        self.calls.append(('open', name))
        return self.current

    def select(self, device_id: int) -> None:
        self.current = device_id
        self.calls.append(('select', device_id))

    def close(self) -> None:
        self.closed.append(self.current)
        self.calls.append(('close', self.current))
        self.current = None

    def page(self) -> None:
        self.calls.append(('page',))

    def update(self) -> None:
        self.calls.append(('update',))

    def process_events(self) -> None:
        self.events += 1

    def viewport(self, x1: float, x2: float, y1: float, y2: float) -> None:
        self.vp = (x1, x2, y1, y2)
        self.calls.append(('viewport', x1, x2, y1, y2))

    def window(self, x1: float, x2: float, y1: float, y2: float) -> None:
        self.win = (x1, x2, y1, y2)
        self.calls.append(('window', x1, x2, y1, y2))

    def box(self, xopts: str, yopts: str) -> None:
        self.calls.append(('box', xopts, yopts))

    def line(self, xs: Sequence[float], ys: Sequence[float]) -> None:
        self.lines.append(DrawnLine(
            self.colour, self.linestyle, [float(x) for x in xs],
            [float(y) for y in ys], self.vp, self.win
        ))
        self.calls.append(('line', len(xs)))

    def text(self, side: str, displacement: float, fraction_along: float,
             justification: float, s: str) -> None:
        self.texts.append((side, displacement, fraction_along, s, self.colour))
        self.calls.append(('text', side, s))

    def world_text(self, x: float, y: float, angle: float,
                   justification: float, s: str) -> None:
        self.texts.append(('world', x, y, s, self.colour))
        self.calls.append(('world_text', s))

    def set_colour(self, colour: int) -> None:
        self.colour = colour

    def set_linestyle(self, style: int) -> None:
        self.linestyle = style

    def set_charheight(self, height: float) -> None:
        self.charheight = height

    def query_charheight(self) -> float:
        return self.charheight

    def query_text_bounds(self, s: str, units: Units) -> tuple[float, float]:
        width, height = CHAR_WIDTH * len(s), LINE_HEIGHT
        if units == Units.VIEWPORT:
            x1, x2, y1, y2 = self.vp
            return width / (x2 - x1), height / (y2 - y1)
        if units == Units.WORLD:
            x1, x2, y1, y2 = self.vp
            wx1, wx2, wy1, wy2 = self.win
            return (width / (x2 - x1) * abs(wx2 - wx1),
                    height / (y2 - y1) * abs(wy2 - wy1))
        return width, height

    def query_viewport(self, units: Units) -> tuple[float, float, float, float]:
        if units == Units.PIXELS:
            return tuple(v * 1000 for v in self.vp)
        return self.vp

    def text_strings(self) -> list[str]:
        return [t[3] for t in self.texts]


@dataclass
class FakeConnection:
    """Server connection capturing the requests sent."""

    requests: list[Request] = field(default_factory=list)
    responses: list[Response] = field(default_factory=list)
    closed: bool = False

    def fileno(self) -> int:
        return -1

    def send_request(self, request_type: RequestType, mjd: float | None = None,
                     options: list[AmpPhaseOptions] | None = None) -> None:
        self.requests.append(Request(
            request_type, 'testclient', 'tester', mjd=mjd,
            options=[o.copy() for o in options or []]
        ))

    def receive(self) -> Response:
        return self.responses.pop(0)

    def close(self) -> None:
        self.closed = True

    def of_type(self, request_type: RequestType) -> list[Request]:
        return [r for r in self.requests if r.request_type == request_type]


@dataclass
class FakeConsole:
    """Terminal replacement collecting messages."""

    lines: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    prompts: int = 0
    wakeup: int | None = None

    def fileno(self) -> int:
        return -1

    def wakeup_fileno(self) -> int | None:
        return self.wakeup

    def read_lines(self) -> list[str] | None:
        return [self.lines.pop(0)] if self.lines else None

    def show_prompt(self) -> None:
        self.prompts += 1

    def show_message(self, message: str) -> None:
        self.messages.append(message)

    def check_resize(self) -> bool:
        return False


def ut_for_mjd(mjd: float) -> tuple[str, float]:
    year, month, day, ut = converter.mjd2cal(mjd)
    return f'{year:04d}-{month:02d}-{day:02d}', ut


def make_header(
    ut_seconds: float = 864.0,
    if_names: Sequence[str] = ('f1', 'f2'),
    num_ants: int = 6,
    cycle_time: int = 10,
    obs_date: str = OBS_DATE
) -> ScanHeader:
    # Antennas on an east-west line, antenna k at k * 100 m.
    positions = np.array([[100.0 * k, 0.0, 0.0] for k in range(1, num_ants + 1)])
    return ScanHeader(
        obs_date, ut_seconds, '1934-638', cycle_time, list(if_names),
        [2100.0 + 1000 * i for i in range(len(if_names))], positions
    )


def all_baselines(antennas: Sequence[int]) -> list[tuple[int, int]]:
    return [(a, b) for a in antennas for b in antennas if b >= a]


def make_block(
    window: int = 1,
    window_name: str = 'f1',
    pol: int = POL_XX,
    frequency: Sequence[float] | None = None,
    baselines: Sequence[tuple[int, int]] = ((1, 1), (1, 2), (2, 2)),
    amplitude_fn=None,
    phase_fn=None,
    nbins: int = 1,
    ut_seconds: float = 864.0,
    obs_date: str = OBS_DATE
) -> AmpPhaseBlock:
    """Block with one amplitude spectrum per baseline.

    `amplitude_fn(baseline_index, bin)` returns the amplitudes;
    by default they rise linearly and differ per baseline.
    """
    if frequency is None:
        frequency = np.linspace(2048.0, 2176.0, 9)
    frequency = np.asarray(frequency, dtype=np.float64)
    nchan = len(frequency)
    if amplitude_fn is None:
        def amplitude_fn(i, b):
            return (i + 1) * np.arange(1, nchan + 1, dtype=np.float64)
    if phase_fn is None:
        def phase_fn(i, b):
            return np.linspace(-10.0, 10.0, nchan) * (i + 1)
    weight, amplitude, phase, raw = [], [], [], []
    for i in range(len(baselines)):
        weight.append([np.ones(nchan) for _ in range(nbins)])
        amps = [np.asarray(amplitude_fn(i, b), dtype=np.float64) for b in range(nbins)]
        phases = [np.asarray(phase_fn(i, b), dtype=np.float64) for b in range(nbins)]
        amplitude.append(amps)
        phase.append(phases)
        raw.append([a * np.exp(1j * np.radians(p)) for a, p in zip(amps, phases)])
    return AmpPhaseBlock(
        window, window_name, pol, obs_date, ut_seconds,
        np.arange(nchan, dtype=np.float64), frequency,
        np.array([ants_to_base(a, b) for a, b in baselines]),
        [np.zeros(nbins, dtype=np.int64) for _ in baselines],
        weight, amplitude, phase, raw
    )


def make_syscal(
    antennas: Sequence[int] = (1, 2, 3, 4, 5, 6),
    windows: Sequence[int] = (1, 2),
    tsys: float = 50.0,
    ut_seconds: float = 864.0
) -> SyscalData:
    shape = (len(antennas), len(windows), 2)
    online = np.full(shape, tsys)
    for a in range(len(antennas)):
        online[a] += a
    return SyscalData(
        OBS_DATE, ut_seconds, list(windows), list(antennas),
        np.zeros(len(antennas), dtype=np.int64),
        online, np.zeros(shape), np.full(shape, 2.0), np.full(shape, 0.5),
        np.full(shape, 12.0)
    )


def make_spectrum(
    windows: Sequence[str] = ('f1',),
    pols: Sequence[int] = (POL_XX, POL_YY),
    ut_seconds: float = 864.0,
    obs_date: str = OBS_DATE,
    **block_kwargs
) -> SpectrumData:
    spectrum = [
        [
            make_block(w + 1, name, pol, ut_seconds=ut_seconds, obs_date=obs_date,
                       **block_kwargs)
            for pol in pols
        ]
        for w, name in enumerate(windows)
    ]
    options = AmpPhaseOptions(min_tvchannel=[2] * len(windows),
                              max_tvchannel=[6] * len(windows))
    options.ensure_windows(len(windows))
    return SpectrumData(
        make_header(ut_seconds, windows, obs_date=obs_date), spectrum,
        make_syscal(windows=range(1, len(windows) + 1), ut_seconds=ut_seconds),
        MetInfo(obs_date, ut_seconds, 15.0, 970.0, 50.0, 10.0, 90.0, 0.0),
        [options]
    )


def make_vis_cycle(
    ut_seconds: float,
    antennas: Sequence[int] = (1, 2, 3),
    pols: Sequence[int] = (POL_XX, POL_YY),
    windows: Sequence[str] = ('f1', 'f2'),
    amplitude: float = 1.0,
    flagged: Sequence[tuple[int, int]] = (),
    cycle_time: int = 10,
    num_ants: int = 6
) -> VisCycle:
    baselines = all_baselines(antennas)
    quantities = []
    for w in range(len(windows)):
        window_quantities = []
        for pol in pols:
            n = len(baselines)
            window_quantities.append(VisQuantity(
                w + 1, pol, OBS_DATE, ut_seconds,
                np.array([ants_to_base(a, b) for a, b in baselines]),
                np.array([1 if bl in flagged else 0 for bl in baselines]),
                [np.array([amplitude * (k + 1)]) for k in range(n)],
                [np.array([10.0 * k]) for k in range(n)],
                [np.array([0.1 * k]) for k in range(n)],
            ))
        quantities.append(window_quantities)
    return VisCycle(
        make_header(ut_seconds, windows, num_ants=num_ants, cycle_time=cycle_time),
        quantities,
        MetInfo(OBS_DATE, ut_seconds, 15.0 + ut_seconds / 3600, 970.0, 50.0),
        make_syscal(windows=range(1, len(windows) + 1), ut_seconds=ut_seconds),
    )


def make_vis_data(times: Sequence[float], **kwargs) -> VisData:
    return VisData([make_vis_cycle(t, **kwargs) for t in times])
