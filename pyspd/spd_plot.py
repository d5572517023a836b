"""Composer of SPD (spectrum) pages.

A page shows one panel per (window, baseline) product of a single
cycle. Panels of a window are packed row by row after those of the
previous window, autocorrelations first. Panels that do not fit in
the grid are dropped. The information strip at the top shows the
time, source, antennas on source, a system temperature table and the
site weather.

Typical usage:

```
    context = SpdPlotContext(device, panels, controls=controls, data=data)
    make_spd_plot(context)
```
"""

import numpy as np
import numpy.typing as npt

from pyspd import converter
from pyspd import get_logger
from pyspd import helpers
from pyspd.controls import PlotFlag, PlotOption, POL_OPTIONS
from pyspd.device import graphics
from pyspd.device.graphics import Units
from pyspd.dsp import averaging
from pyspd.dsp.containers import (
    AmpPhaseBlock, base_to_ants, POL_XX, POL_XY, POL_YX, POL_YY, SpectrumData
)
from pyspd.panels import PANEL_INFORMATION
from pyspd.plot_context import SpdPlotContext


log = get_logger(__name__)

TITLE_HEIGHT = 0.4
"""Height of the panel title above the top axis in character heights."""

POL_LABEL_HEIGHT = 2.2
"""Depth of the polarisation labels below the bottom axis."""

POL_LABEL_PADDING = 1.2
"""Advance of the polarisation labels as a multiple of their width."""

INFO_X_START = 0.01
"""Left position of the first information item."""

INFO_X_GAP = 0.02
"""Space between information items."""

LOG_FLOOR = -120.0
"""Log amplitude shown for values too small to take the log of."""

PLOT_FLAG_FOR_POL = {
    POL_XX: PlotFlag.POL_XX,
    POL_YY: PlotFlag.POL_YY,
    POL_XY: PlotFlag.POL_XY,
    POL_YX: PlotFlag.POL_YX,
}


def log_amplitude(values: npt.ArrayLike, max_value: float) -> npt.NDArray[np.float64]:
    """Converts amplitudes into dB relative to `max_value`."""
    values = np.asarray(values, dtype=np.float64)
    result = np.full(values.shape, LOG_FLOOR)
    if max_value <= 0:
        return result
    valid = values >= max_value / 1e12
    result[valid] = 10 * np.log10(values[valid] / max_value)
    return result


def y_kind_label(options: PlotOption) -> str:
    """Title prefix describing the y-axis quantity."""
    log_scale = bool(options & PlotOption.AMPLITUDE_LOG)
    if options & PlotOption.AMPLITUDE:
        return 'LOG(dB) AMPL.' if log_scale else 'AMPL.'
    if options & PlotOption.PHASE:
        return 'PHASE'
    if options & PlotOption.REAL:
        return 'REAL'
    if options & PlotOption.IMAG:
        return 'IMAG'
    if options & PlotOption.DELAY:
        return 'DELAY'
    return ''


def window_kind_label(window_name: str) -> str:
    """'FQ:<n>' for continuum windows and 'ZM:<n>' for zooms."""
    if window_name.startswith('z'):
        return f'ZM:{window_name[1:]}'
    if window_name.startswith('f'):
        return f'FQ:{window_name[1:]}'
    return f'FQ:{window_name}'


def pol_label(pol: int, is_auto: bool, bin_idx: int) -> str:
    """Legend label of a polarisation; lower case for later auto bins."""
    labels = {POL_XX: 'AA', POL_YY: 'BB', POL_XY: 'AB', POL_YX: 'BA'}
    label = labels.get(pol, '??')
    if is_auto and bin_idx > 0 and pol in (POL_XX, POL_YY):
        label = label.lower()
    return label


def bin_is_plotted(pol: int, bin_idx: int, is_auto: bool, plot_flags: PlotFlag) -> bool:
    """Applies the bin policy to a polarisation and bin."""
    cross_pol = pol in (POL_XY, POL_YX)
    if is_auto:
        if bin_idx > 0 and cross_pol:
            # Second bins of the cross-pols are not shown.
            return False
        if pol == POL_YX and not plot_flags & PlotFlag.POL_YX:
            return False
        return True
    if cross_pol and not plot_flags & PLOT_FLAG_FOR_POL[pol]:
        return False
    return bin_idx == 0


def selected_pols(context: SpdPlotContext, window_idx: int) -> list[int]:
    """Indices of the pols to plot for a window, in XX, YY, XY, YX order."""
    controls = context.controls
    polidx = []
    for option, code in POL_OPTIONS:
        if not controls.plot_options & option:
            continue
        if code in (POL_XX, POL_YY) and not controls.plot_flags & PLOT_FLAG_FOR_POL[code]:
            continue
        idx = context.data.find_pol(window_idx, code)
        if idx >= 0:
            polidx.append(idx)
    return polidx


def panel_values(
    block: AmpPhaseBlock,
    baseline_idx: int,
    bin_idx: int,
    options: PlotOption,
    log_max: float | None = None,
    phase_in_degrees: bool = True
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """X and Y values of one line, unflagged channels only.

    Inverted bands are reversed so X increases when plotted against
    frequency.
    """
    mask = block.good_channels(baseline_idx, bin_idx)
    if options & PlotOption.FREQUENCY:
        xs = block.frequency[mask]
    else:
        xs = block.channel[mask]
    if options & PlotOption.AMPLITUDE:
        ys = block.amplitude[baseline_idx][bin_idx][mask]
        if options & PlotOption.AMPLITUDE_LOG and log_max is not None:
            ys = log_amplitude(ys, log_max)
    elif options & PlotOption.PHASE:
        ys = block.phase[baseline_idx][bin_idx][mask]
    elif options & PlotOption.REAL:
        ys = block.raw[baseline_idx][bin_idx][mask].real
    elif options & PlotOption.IMAG:
        ys = block.raw[baseline_idx][bin_idx][mask].imag
    else:
        ys = averaging.compute_delays(
            block.frequency[mask],
            block.phase[baseline_idx][bin_idx][mask],
            phase_in_degrees
        )
    if options & PlotOption.FREQUENCY and len(xs) > 1 and xs[0] > xs[-1]:
        xs = xs[::-1]
        ys = ys[::-1]
    return np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)


def _baseline_yrange(
    blocks: list[AmpPhaseBlock],
    polidx: list[int],
    baseline_idx: int,
    options: PlotOption,
    phase_in_degrees: bool
) -> tuple[float, float]:
    """Y range of one baseline over the selected pols."""
    lows, highs = [], []
    for p in polidx:
        block = blocks[p]
        if options & PlotOption.AMPLITUDE:
            lows.append(block.min_amplitude[baseline_idx])
            highs.append(block.max_amplitude[baseline_idx])
        elif options & PlotOption.PHASE:
            lows.append(block.min_phase[baseline_idx])
            highs.append(block.max_phase[baseline_idx])
        elif options & PlotOption.REAL:
            lows.append(block.min_real[baseline_idx])
            highs.append(block.max_real[baseline_idx])
        elif options & PlotOption.IMAG:
            lows.append(block.min_imag[baseline_idx])
            highs.append(block.max_imag[baseline_idx])
        else:
            for b in range(block.nbins(baseline_idx)):
                _, delays = panel_values(
                    block, baseline_idx, b, PlotOption.DELAY,
                    phase_in_degrees=phase_in_degrees
                )
                if len(delays):
                    lows.append(float(np.min(delays)))
                    highs.append(float(np.max(delays)))
    if not lows:
        return 0.0, 1.0
    return float(min(lows)), float(max(highs))


def panel_limits(
    context: SpdPlotContext,
    blocks: list[AmpPhaseBlock],
    window_idx: int,
    baseline_idx: int,
    polidx: list[int],
    phase_in_degrees: bool = True
) -> tuple[float, float, float, float]:
    """Works out the axis ranges of one panel.

    Returns:
        tuple[min_x, max_x, min_y, max_y]
    """
    controls = context.controls
    options = controls.plot_options
    first = blocks[0]
    nchan = first.nchannels
    limit = controls.channel_range_limit[window_idx]
    cmin = controls.channel_range_min[window_idx]
    cmax = controls.channel_range_max[window_idx]

    if options & PlotOption.FREQUENCY:
        min_x = float(first.frequency[0])
        max_x = float(first.frequency[nchan - 1])
        if limit:
            if 0 <= cmin < nchan:
                min_x = float(first.frequency[cmin])
            if 0 < cmax < nchan and cmax > cmin:
                max_x = float(first.frequency[cmax])
        if min_x > max_x:
            min_x, max_x = max_x, min_x
    else:
        min_x, max_x = 0.0, float(nchan)
        if limit:
            if 0 <= cmin < nchan:
                min_x = float(cmin)
            if 0 < cmax < nchan and cmax > min_x:
                max_x = float(cmax)

    if controls.yaxis_range_limit:
        return min_x, max_x, controls.yaxis_range_min, controls.yaxis_range_max
    if not polidx:
        return min_x, max_x, 0.0, 1.0

    min_y, max_y = _baseline_yrange(blocks, polidx, baseline_idx, options, phase_in_degrees)

    if options & PlotOption.CONSISTENT_YRANGE:
        ant1, ant2 = base_to_ants(first.baseline[baseline_idx])
        is_auto = ant1 == ant2
        for i in range(first.nbaselines):
            a1, a2 = base_to_ants(first.baseline[i])
            if not (controls.array_spec & (1 << a1) and controls.array_spec & (1 << a2)):
                continue
            if (a1 == a2) != is_auto:
                continue
            low, high = _baseline_yrange(blocks, polidx, i, options, phase_in_degrees)
            min_y = min(min_y, low)
            max_y = max(max_y, high)

    if min_x == max_x:
        min_x -= 1
        max_x += 1
    if min_y == max_y:
        min_y -= 1
        max_y += 1
    return min_x, max_x, min_y, max_y


def channel_to_x(block: AmpPhaseBlock, channel: int, options: PlotOption) -> float | None:
    """Position of a channel on the x-axis, or None if it is not in the block."""
    if not options & PlotOption.FREQUENCY:
        return float(channel)
    matches = np.nonzero(block.channel == channel)[0]
    if len(matches) == 0:
        return None
    return float(block.frequency[matches[0]])


def draw_information(context: SpdPlotContext) -> None:
    """Fills the information strip above the panels."""
    device = context.device
    data = context.data
    first = data.spectrum[0][0]
    context.panels.select(PANEL_INFORMATION, PANEL_INFORMATION, device)
    device.window(0, 1, 0, 1)
    device.set_colour(1)
    device.box('BC', 'BC')

    tsys = context.compiled_tsys
    num_rows = 1 + (tsys.num_ifs if tsys is not None else 0)
    num_lines = max(3, num_rows)
    row_y = [1 - (r + 1) / (num_lines + 1) for r in range(num_lines)]

    x_pos = INFO_X_START
    items = [
        first.obs_date,
        converter.seconds_to_hourlabel(first.ut_seconds),
        data.header.source_name,
    ]
    for item in items:
        device.world_text(x_pos, row_y[0], 0, 0, item)
        x_pos += device.query_text_bounds(item, Units.WORLD)[0] + INFO_X_GAP

    if tsys is not None:
        on_source = tsys.on_source_string(context.max_antennas)
        device.world_text(INFO_X_START, row_y[1], 0, 0, f'Ants on source: {on_source}')
    if data.metinfo is not None:
        met = data.metinfo
        device.world_text(
            INFO_X_START, row_y[-1], 0, 0,
            f'T={met.temperature:.1f} C  P={met.air_pressure:.1f} hPa  '
            f'H={met.humidity:.0f}%'
        )

    if tsys is None or tsys.num_ifs == 0:
        return
    # Tsys table: header row of antennas, one row per displayed window.
    cell_width = device.query_text_bounds('0000.0 / 0000.0', Units.WORLD)[0] + INFO_X_GAP
    label_width = device.query_text_bounds('IF00', Units.WORLD)[0] + INFO_X_GAP
    x_table = max(x_pos, 1 - label_width - tsys.num_ants * cell_width - INFO_X_START)
    for a, antenna in enumerate(tsys.ant_num):
        device.world_text(
            x_table + label_width + a * cell_width, row_y[0], 0, 0, f'CA{antenna:02d}'
        )
    for f, window in enumerate(tsys.if_num):
        y = row_y[f + 1]
        device.world_text(x_table, y, 0, 0, f'IF{window}')
        for a in range(tsys.num_ants):
            values = tsys.online_tsys[a, f]
            xx = values[0] if len(values) > 0 else 0.0
            yy = values[1] if len(values) > 1 else 0.0
            device.world_text(
                x_table + label_width + a * cell_width, y, 0, 0,
                f'{xx:.1f} / {yy:.1f}'
            )


def make_spd_plot(context: SpdPlotContext) -> None:
    """Draws one SPD page for the cycle in the context."""
    controls = context.controls
    data: SpectrumData | None = context.data
    device = context.device
    panels = context.panels
    if data is None or data.num_ifs == 0:
        return

    antennas = [
        a for a in helpers.array_spec_antennas(controls.array_spec)
        if a <= context.max_antennas
    ]
    nants = len(antennas)
    if nants == 0:
        return

    show_autos = bool(controls.plot_flags & PlotFlag.AUTOCORRELATIONS)
    show_crosses = bool(controls.plot_flags & PlotFlag.CROSSCORRELATIONS)
    panels_per_if = (nants if show_autos else 0)
    panels_per_if += (nants * (nants - 1)) // 2 if show_crosses else 0

    options = controls.plot_options
    panel_plotted = np.zeros((panels.nx, panels.ny))
    plot_started = False
    num_ifs = 0
    averaged_cache: dict[tuple[int, int], AmpPhaseBlock] = {}

    for w in range(min(len(controls.if_num_spec), data.num_ifs)):
        if not controls.if_num_spec[w]:
            continue
        blocks = data.spectrum[w]
        if not blocks:
            continue
        polidx = selected_pols(context, w)
        first = blocks[0]
        block_options = data.block_options(first)
        iauto = 0
        icross = 0

        for i in range(first.nbaselines):
            ant1, ant2 = base_to_ants(first.baseline[i])
            if not (controls.array_spec & (1 << ant1) and controls.array_spec & (1 << ant2)):
                continue
            if ant1 == ant2 and show_autos:
                plotnum = num_ifs * panels_per_if + iauto
                iauto += 1
                num_bins = 2
                is_auto = True
            elif ant1 != ant2 and show_crosses:
                plotnum = num_ifs * panels_per_if + icross
                if show_autos:
                    plotnum += nants
                icross += 1
                num_bins = 1
                is_auto = False
            else:
                continue
            px, py = panels.plotnum_to_xy(plotnum)
            if py >= panels.ny:
                continue

            if not plot_started:
                device.page()
                plot_started = True
                draw_information(context)

            panels.select(px, py, device)
            title = (
                f'{y_kind_label(options)} {window_kind_label(first.window_name)} '
                f'BSL{ant1}{ant2}'
            )
            min_x, max_x, min_y, max_y = panel_limits(
                context, blocks, w, i, polidx, block_options.phase_in_degrees
            )
            log_max = None
            if options & PlotOption.AMPLITUDE and options & PlotOption.AMPLITUDE_LOG:
                log_max = max_y
                min_y = float(log_amplitude([min_y], log_max)[0])
                max_y = 1.0

            device.set_colour(1)
            device.set_linestyle(graphics.LINESTYLE_FULL)
            device.window(min_x, max_x, min_y, max_y)
            if panel_plotted[px, py] == 0:
                per_panel_y = not (
                    controls.yaxis_range_limit or options & PlotOption.CONSISTENT_YRANGE
                )
                yopts = 'BCNTS' if px == 0 or per_panel_y else 'BCTS'
                device.box('BCNTS1', yopts)
                device.text('T', TITLE_HEIGHT, 0.5, 0.5, title)

            num_bins = min(num_bins, first.nbins(i))
            colour = 1
            for p in polidx:
                block = blocks[p]
                for b in range(min(num_bins, block.nbins(i))):
                    if not bin_is_plotted(block.pol, b, is_auto, controls.plot_flags):
                        continue
                    xs, ys = panel_values(
                        block, i, b, options, log_max, block_options.phase_in_degrees
                    )
                    device.set_colour(colour)
                    device.line(xs, ys)
                    label = pol_label(block.pol, is_auto, b)
                    _add_pol_label(context, px, py, panel_plotted, label)

                    if options & PlotOption.AVERAGED:
                        key = (w, p)
                        if key not in averaged_cache:
                            averaged_cache[key] = averaging.average_block(
                                block,
                                _window_setting(block_options.delay_averaging, w, 1),
                                _window_setting(block_options.averaging_method, w, 5),
                                block_options.phase_in_degrees
                            )
                        avg_colour = graphics.wrap_colour(
                            colour + context.averaged_colour_offset, context.palette_size
                        )
                        avg_xs, avg_ys = panel_values(
                            averaged_cache[key], i, b, options, log_max,
                            block_options.phase_in_degrees
                        )
                        device.set_colour(avg_colour)
                        device.line(avg_xs, avg_ys)
                        _add_pol_label(context, px, py, panel_plotted, f'{label}v')
                    colour += 1

            if options & PlotOption.TVCHANNELS and w < len(block_options.min_tvchannel):
                device.set_colour(1)
                device.set_linestyle(graphics.LINESTYLE_DASHED)
                for channel in (block_options.min_tvchannel[w],
                                block_options.max_tvchannel[w]):
                    x = channel_to_x(first, channel, options)
                    if x is not None:
                        device.line([x, x], [min_y, max_y])
                device.set_linestyle(graphics.LINESTYLE_FULL)
        num_ifs += 1

    if plot_started:
        device.update()
    else:
        log.debug('No panels to draw for the current selection.')


def _add_pol_label(
    context: SpdPlotContext,
    px: int,
    py: int,
    panel_plotted: npt.NDArray[np.float64],
    label: str
) -> None:
    """Writes a legend label below the panel and advances the position."""
    device = context.device
    device.text('B', POL_LABEL_HEIGHT, panel_plotted[px, py], 0.0, label)
    width, _ = device.query_text_bounds(label, Units.VIEWPORT)
    panel_plotted[px, py] += width * POL_LABEL_PADDING


def _window_setting(values: list[int], window_idx: int, default: int) -> int:
    return values[window_idx] if window_idx < len(values) else default
