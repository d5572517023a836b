"""Composer of VIS (time series) pages.

Each panel shows one quantity against time for a set of lines built
from the VIS products: baseline visibilities (amplitude, phase,
delay), per-antenna system calibration values or site weather data.
The time axis is shared by all panels and follows the history
settings of the controls.
"""

from dataclasses import dataclass, field
import math
from typing import Final

import numpy as np

from pyspd import converter
from pyspd import get_logger
from pyspd import helpers
from pyspd.controls import (
    PlotOption, VIS_PLOT_IF1, VIS_PLOT_IF2, VisControls, VisPanelType, VisProduct
)
from pyspd.device import graphics
from pyspd.device.graphics import Units
from pyspd.dsp.containers import (
    MetInfo, POL_XX, POL_XY, POL_YY, ScanHeader, SyscalData, VisCycle,
    pol_to_vis_name
)
from pyspd.panels import PANEL_ORIGINAL
from pyspd.plot_context import VisPlotContext


log = get_logger(__name__)

MAX_VIS_LINES: Final[int] = 16
"""Maximum number of lines drawn per panel."""

GAP_FACTOR: Final[float] = 1.5
"""Lines are broken where points are further apart than this many cycle times."""

HISTORY_PADDING: Final[float] = 0.05
"""Fraction of the time range added on the right."""

Y_PADDING: Final[float] = 0.05
"""Fraction of the data range added above and below."""

LABEL_PADDING: Final[float] = 0.01
"""Space between the band legend and the right edge."""

BAND_LABEL_OFFSET: Final[float] = 1.1
"""Band labels are drawn this many character heights above the frequencies."""

ANTENNA_COLOUR_OFFSET: Final[int] = 3
"""Colour of antenna k in the legend is k plus this offset."""

_BAND_POL_OPTIONS: Final[list[tuple[PlotOption, int]]] = [
    (PlotOption.POL_XX, POL_XX),
    (PlotOption.POL_YY, POL_YY),
]


@dataclass
class VisLine:
    """A line drawn in the VIS panels."""

    ant1: int
    """First antenna."""

    ant2: int
    """Second antenna; equal to ant1 for autocorrelations."""

    if_label: str
    """Window label of the band."""

    band: int
    """VIS band number (1 or 2)."""

    pol: int
    """Polarisation code."""

    label: str
    """Legend label, e.g. '12AA'."""

    baseline_length: float
    """Baseline length in metres for sorting."""

    bin: int = 0
    """Bin the values are read from."""

    colour: int = 1
    """Colour index."""

    line_style: int = graphics.LINESTYLE_FULL
    """Line style index used on the Tsys panels."""

    @property
    def is_auto(self) -> bool:
        """Line belongs to an autocorrelation."""
        return self.ant1 == self.ant2

    def shown_on(self, panel_type: VisPanelType) -> bool:
        """Whether the line is drawn on a panel of the given type."""
        if panel_type.is_visibility:
            return not self.is_auto or self.pol == POL_XY
        if panel_type.is_tsys_family:
            return self.pol in (POL_XX, POL_YY)
        return False


@dataclass
class PanelLines:
    """Points of all lines of one panel."""

    xs: list[list[float]] = field(default_factory=list)
    ys: list[list[float]] = field(default_factory=list)
    cycle_times: list[list[float]] = field(default_factory=list)


def _product_pairs(product: VisProduct, array_spec: int, max_antennas: int) -> list[tuple[int, int]]:
    """Antenna pairs (i <= j) selected by a product within the active array."""
    active = [a for a in helpers.array_spec_antennas(array_spec) if a <= max_antennas]
    requested = [a for a in active if product.antenna_spec & (1 << a)]
    pairs = []
    if len(requested) == 1:
        # A single antenna selects every baseline it takes part in.
        k = requested[0]
        for other in active:
            pairs.append((min(k, other), max(k, other)))
        return sorted(set(pairs))
    for i in requested:
        for j in requested:
            if j >= i:
                pairs.append((i, j))
    return pairs


def build_vis_lines(
    controls: VisControls,
    header: ScanHeader,
    max_antennas: int,
    sort_baselines: bool
) -> list[VisLine]:
    """Expands the VIS products into lines.

    Cross-correlations give XX and YY lines. Autocorrelations give XY
    lines for the visibility panels and, when Tsys panels are shown,
    XX and YY lines for them; auto lines get a line style per
    (pol, band) pair. At most `MAX_VIS_LINES` lines are kept and
    coloured 1, 2, ... in order.
    """
    has_tsys = any(p.is_tsys_family for p in controls.panel_type)
    bands = [(VIS_PLOT_IF1, 1), (VIS_PLOT_IF2, 2)]
    lines: list[VisLine] = []
    seen: set[tuple[int, int, int, int]] = set()

    def add(ant1: int, ant2: int, band: int, pol: int) -> None:
        if band > controls.nvisbands:
            return
        key = (ant1, ant2, band, pol)
        if key in seen:
            return
        seen.add(key)
        lines.append(VisLine(
            ant1, ant2, controls.visbands[band - 1], band, pol,
            f'{ant1}{ant2}{pol_to_vis_name(pol, band)}',
            header.baseline_length(ant1, ant2),
        ))

    for product in controls.vis_products:
        for ant1, ant2 in _product_pairs(product, controls.array_spec, max_antennas):
            for band_bit, band in bands:
                if not product.if_spec & band_bit:
                    continue
                if ant1 != ant2:
                    for option, pol in _BAND_POL_OPTIONS:
                        if product.pol_spec & option:
                            add(ant1, ant2, band, pol)
                    continue
                if product.pol_spec & PlotOption.POL_XY:
                    add(ant1, ant2, band, POL_XY)
                if has_tsys:
                    for option, pol in _BAND_POL_OPTIONS:
                        if product.pol_spec & option:
                            add(ant1, ant2, band, pol)

    if sort_baselines:
        lines.sort(key=lambda line: line.baseline_length)
    lines = lines[:MAX_VIS_LINES]

    styles: dict[tuple[int, int], int] = {}
    for i, line in enumerate(lines):
        line.colour = i + 1
        if line.is_auto:
            key = (line.pol, line.band)
            if key not in styles:
                styles[key] = (len(styles) % graphics.NUM_LINESTYLES) + 1
            line.line_style = styles[key]
    return lines


def tsys_antenna(line: VisLine, second_antenna: int) -> int:
    """Antenna whose system calibration represents a line."""
    if line.ant2 == second_antenna:
        return line.ant2
    return line.ant1


def cycle_seconds(cycle: VisCycle, base_mjd: float) -> float:
    """Time of a cycle in seconds since midnight of the base day."""
    mjd = cycle.header.mjd
    return (mjd - math.floor(base_mjd)) * converter.SECONDS_PER_DAY


def _visibility_value(
    cycle: VisCycle, line: VisLine, panel_type: VisPanelType
) -> float | None:
    window = cycle.header.find_if_name(line.if_label)
    for window_quantities in cycle.quantities:
        for quantity in window_quantities:
            if quantity.pol != line.pol or quantity.window != window:
                continue
            n = quantity.baseline_index(line.ant1, line.ant2)
            if n < 0 or quantity.flagged_bad[n] > 0:
                return None
            source = {
                VisPanelType.AMPLITUDE: quantity.amplitude,
                VisPanelType.PHASE: quantity.phase,
                VisPanelType.DELAY: quantity.delay,
            }[panel_type][n]
            if line.bin >= len(source):
                return None
            return float(source[line.bin])
    return None


def _tsys_value(
    syscal: SyscalData | None,
    header: ScanHeader,
    line: VisLine,
    panel_type: VisPanelType,
    second_antenna: int
) -> float | None:
    if syscal is None:
        return None
    a_idx = syscal.ant_index(tsys_antenna(line, second_antenna))
    f_idx = syscal.if_index(header.find_if_name(line.if_label))
    p_idx = 0 if line.pol == POL_XX else 1
    if a_idx < 0 or f_idx < 0:
        return None
    table = {
        VisPanelType.SYSTEMP: syscal.online_tsys,
        VisPanelType.SYSTEMP_COMPUTED: syscal.computed_tsys,
        VisPanelType.GTP: syscal.gtp,
        VisPanelType.SDO: syscal.sdo,
        VisPanelType.CALJY: syscal.caljy,
    }[panel_type]
    if table.ndim != 3 or p_idx >= table.shape[2]:
        return None
    value = float(table[a_idx, f_idx, p_idx])
    return value if np.isfinite(value) else None


def _site_value(metinfo: MetInfo | None, panel_type: VisPanelType) -> float | None:
    if metinfo is None:
        return None
    if panel_type == VisPanelType.SEEMONPHASE or panel_type == VisPanelType.SEEMONRMS:
        if metinfo.seemon_flag:
            return None
    attribute = {
        VisPanelType.TEMPERATURE: 'temperature',
        VisPanelType.PRESSURE: 'air_pressure',
        VisPanelType.HUMIDITY: 'humidity',
        VisPanelType.WINDSPEED: 'wind_speed',
        VisPanelType.WINDDIR: 'wind_direction',
        VisPanelType.RAINGAUGE: 'rain_gauge',
        VisPanelType.SEEMONPHASE: 'seemon_phase',
        VisPanelType.SEEMONRMS: 'seemon_rms',
    }[panel_type]
    return float(getattr(metinfo, attribute))


def time_window(
    cycles: list[VisCycle],
    lines: list[VisLine],
    controls: VisControls,
    base_mjd: float
) -> tuple[float, float]:
    """Common time range of all panels in seconds.

    The range covers unflagged data of the visibility lines (all
    cycles if there are none), limited by the history settings and
    widened on the right.
    """
    times = []
    vis_lines = [line for line in lines if line.shown_on(VisPanelType.AMPLITUDE)]
    for cycle in cycles:
        if not vis_lines or any(
            _visibility_value(cycle, line, VisPanelType.AMPLITUDE) is not None
            for line in vis_lines
        ):
            times.append(cycle_seconds(cycle, base_mjd))
    if not times:
        times = [cycle_seconds(cycle, base_mjd) for cycle in cycles]
    min_x = min(times)
    max_x = max(times)
    min_x = max(min_x, max_x - controls.history_start * 60)
    max_x = min(max_x, min_x + controls.history_length * 60)
    max_x += (max_x - min_x) * HISTORY_PADDING
    if min_x == max_x:
        min_x -= controls.cycletime
        max_x += controls.cycletime
    return min_x, max_x


def collect_panel_lines(
    context: VisPlotContext,
    panel_type: VisPanelType,
    lines: list[VisLine],
    min_x: float,
    max_x: float,
    base_mjd: float,
    second_antenna: int
) -> PanelLines:
    """Gathers the points of every line of a panel inside the time range."""
    panel = PanelLines()
    for line in lines:
        xs, ys, cts = [], [], []
        for cycle in context.data.cycles:
            x = cycle_seconds(cycle, base_mjd)
            if x < min_x or x > max_x:
                continue
            if panel_type.is_visibility:
                value = _visibility_value(cycle, line, panel_type)
            elif panel_type.is_tsys_family:
                value = _tsys_value(cycle.syscal, cycle.header, line, panel_type, second_antenna)
            else:
                value = _site_value(cycle.metinfo, panel_type)
            if value is None:
                continue
            xs.append(x)
            ys.append(value)
            cts.append(float(cycle.header.cycle_time or context.controls.cycletime))
        panel.xs.append(xs)
        panel.ys.append(ys)
        panel.cycle_times.append(cts)
    return panel


def split_segments(
    xs: list[float], ys: list[float], cycle_times: list[float]
) -> list[tuple[list[float], list[float]]]:
    """Breaks a line wherever consecutive points are more than 1.5 cycle times apart."""
    segments = []
    start = 0
    for k in range(len(xs) - 1):
        if xs[k + 1] > xs[k] + GAP_FACTOR * cycle_times[k]:
            segments.append((xs[start:k + 1], ys[start:k + 1]))
            start = k + 1
    if start < len(xs):
        segments.append((xs[start:], ys[start:]))
    return segments


def panel_yrange(
    panel: PanelLines, panel_type: VisPanelType, controls: VisControls, index: int
) -> tuple[float, float]:
    """Y range of a panel with padding, floor and manual limits applied."""
    values = [y for ys in panel.ys for y in ys]
    if values:
        min_y, max_y = min(values), max(values)
    else:
        min_y, max_y = 0.0, 1.0
    dy = Y_PADDING * (max_y - min_y)
    min_y -= dy
    max_y += dy
    if panel_type == VisPanelType.AMPLITUDE and min_y < 0:
        min_y = 0.0
    if controls.use_panel_limits[index]:
        min_y = controls.panel_limits_min[index]
        max_y = controls.panel_limits_max[index]
    if min_y == max_y:
        min_y -= 1
        max_y += 1
    return min_y, max_y


def make_vis_plot(context: VisPlotContext) -> None:
    """Draws one VIS page for the cycles in the context."""
    controls = context.controls
    device = context.device
    panels = context.panels
    data = context.data
    if data is None or not data.cycles or controls.num_panels == 0:
        return
    active = [
        a for a in helpers.array_spec_antennas(controls.array_spec)
        if a <= context.max_antennas
    ]
    if not active:
        return

    header = data.cycles[-1].header
    base_mjd = data.cycles[0].header.mjd
    lines = build_vis_lines(controls, header, context.max_antennas, context.sort_baselines)
    second_antenna = context.tsys_second_antenna or max(active)
    min_x, max_x = time_window(data.cycles, lines, controls, base_mjd)
    site_line = VisLine(0, 0, '', 1, 0, '', 0.0)

    device.page()
    for i, panel_type in enumerate(controls.panel_type):
        if i >= panels.ny:
            break
        if panel_type.is_site:
            panel_lines = [site_line]
        else:
            panel_lines = [line for line in lines if line.shown_on(panel_type)]
        points = collect_panel_lines(
            context, panel_type, panel_lines, min_x, max_x, base_mjd, second_antenna
        )
        min_y, max_y = panel_yrange(points, panel_type, controls, i)

        panels.select(0, i, device)
        device.window(min_x, max_x, min_y, max_y)
        device.set_colour(1)
        device.set_linestyle(graphics.LINESTYLE_FULL)
        yopts = 'BCNTS' if i % 2 == 0 else 'BCMTS'
        last = i == min(controls.num_panels, panels.ny) - 1
        xopts = 'BCNTSZH' if last else 'BCTSZ'
        device.box(xopts, yopts)
        device.text('L', 2.2, 0.5, 0.5, panel_type.label)
        device.text('R', 2.2, 0.5, 0.5, panel_type.units)

        for j, line in enumerate(panel_lines):
            device.set_colour(line.colour)
            style = line.line_style if panel_type.is_tsys_family else graphics.LINESTYLE_FULL
            device.set_linestyle(style)
            for seg_x, seg_y in split_segments(
                points.xs[j], points.ys[j], points.cycle_times[j]
            ):
                device.line(seg_x, seg_y)
        device.set_linestyle(graphics.LINESTYLE_FULL)

        device.set_colour(graphics.GUIDE_COLOUR)
        device.set_linestyle(graphics.LINESTYLE_DASHED)
        for t in context.times:
            if min_x <= t <= max_x:
                device.line([t, t], [min_y, max_y])
        device.set_linestyle(graphics.LINESTYLE_FULL)

        if last:
            device.set_colour(1)
            device.text('B', 3, 0.5, 0.5, 'UT')
            _draw_baseline_labels(context, lines)
        if i == 0:
            _draw_top_legends(context, lines, header)
            panels.select(0, i, device)
    device.update()


def _draw_baseline_labels(context: VisPlotContext, lines: list[VisLine]) -> None:
    """Spreads the line labels evenly across the bottom of the last panel."""
    device = context.device
    if not lines:
        return
    widths = [device.query_text_bounds(line.label, Units.VIEWPORT)[0] for line in lines]
    spacing = (1 - sum(widths)) / (len(lines) - 1) if len(lines) > 1 else 0.0
    position = 0.0
    for line, width in zip(lines, widths):
        device.set_colour(line.colour)
        device.text('B', 4, position, 0, line.label)
        position += width + spacing
    device.set_colour(1)


def _draw_top_legends(context: VisPlotContext, lines: list[VisLine], header: ScanHeader) -> None:
    """Antenna, band and Tsys line style legends above the top panel."""
    device = context.device
    controls = context.controls

    position = 0.0
    device.set_colour(ANTENNA_COLOUR_OFFSET)
    device.text('T', 0.5, position, 0, 'Ants:')
    position += device.query_text_bounds('Ants:', Units.VIEWPORT)[0]
    for antenna in range(1, context.max_antennas + 1):
        text = str(antenna) if controls.array_spec & (1 << antenna) else '-'
        device.set_colour(graphics.wrap_colour(antenna + ANTENNA_COLOUR_OFFSET))
        device.text('T', 0.5, position, 0, text)
        position += device.query_text_bounds(text, Units.VIEWPORT)[0]

    device.set_colour(1)
    band_texts = []
    for j, band in enumerate(controls.visbands):
        first = chr(ord('A') + 2 * j)
        second = chr(ord('B') + 2 * j)
        ipos = header.find_if_name(band) - 1
        freq = header.if_centre_freq[ipos] if 0 <= ipos < len(header.if_centre_freq) else 0.0
        band_texts.append((f'{first}{first},{second}{second} = {band}', f'{freq:.0f}'))
    if band_texts:
        max_width = max(
            device.query_text_bounds(t, Units.VIEWPORT)[0]
            for pair in band_texts for t in pair
        )
        n = len(band_texts)
        position = 1 - (n * max_width + LABEL_PADDING)
        for label, freq in band_texts:
            device.text('T', 0.5, position, 0, freq)
            device.text('T', 0.5 + BAND_LABEL_OFFSET, position, 0, label)
            position += max_width + (LABEL_PADDING / (n - 1) if n > 1 else 0.0)

    if any(p.is_tsys_family for p in controls.panel_type):
        _draw_tsys_legend(context, lines)


def _draw_tsys_legend(context: VisPlotContext, lines: list[VisLine]) -> None:
    """Samples of the line styles used for (pol, band) pairs on Tsys panels."""
    device = context.device
    styles: dict[int, str] = {}
    for line in lines:
        if line.is_auto and line.pol in (POL_XX, POL_YY) and line.line_style not in styles:
            styles[line.line_style] = f'{pol_to_vis_name(line.pol, line.band)} {line.if_label}'
    if not styles:
        return
    context.panels.select(0, PANEL_ORIGINAL, device)
    device.window(0, 1, 0, 1)
    device.set_colour(1)
    x = 0.35
    for style, text in styles.items():
        device.set_linestyle(style)
        device.line([x, x + 0.04], [0.75, 0.75])
        device.set_linestyle(graphics.LINESTYLE_FULL)
        device.world_text(x + 0.05, 0.65, 0, 0, text)
        x += 0.06 + device.query_text_bounds(text, Units.WORLD)[0]
