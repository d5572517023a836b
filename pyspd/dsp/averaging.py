"""Module with channel averaging and delay functions for spectra.
"""

import numpy as np
import numpy.typing as npt
import scipy.stats

from pyspd.dsp.containers import AmpPhaseBlock, AveragingMethod


def chunk_average(
    values: npt.NDArray,
    num_average: int,
    use_median: bool = False
) -> npt.NDArray:
    """Averages consecutive groups of `num_average` values.

    A trailing group with fewer values is averaged on its own.

    Args:
        values: Real or complex array.
        num_average: Number of values per group, at least 1.
        use_median: Use the median instead of the mean.
    """
    num_average = max(1, int(num_average))
    if values.size == 0:
        return values
    starts = range(0, len(values), num_average)
    if np.iscomplexobj(values) and use_median:
        return np.array([
            np.median(values[s:s + num_average].real)
            + 1j * np.median(values[s:s + num_average].imag)
            for s in starts
        ])
    reducer = np.median if use_median else np.mean
    return np.array([reducer(values[s:s + num_average]) for s in starts])


def chunk_circular_average(
    phases: npt.NDArray[np.float64],
    num_average: int,
    phase_in_degrees: bool = True
) -> npt.NDArray[np.float64]:
    """Circular mean of consecutive groups of phases."""
    num_average = max(1, int(num_average))
    if phases.size == 0:
        return phases
    radians = np.deg2rad(phases) if phase_in_degrees else phases
    result = np.array([
        scipy.stats.circmean(radians[s:s + num_average], high=np.pi, low=-np.pi)
        for s in range(0, len(radians), num_average)
    ])
    return np.rad2deg(result) if phase_in_degrees else result


def compute_delays(
    frequency: npt.NDArray[np.float64],
    phase: npt.NDArray[np.float64],
    phase_in_degrees: bool = True
) -> npt.NDArray[np.float64]:
    """Delay in ns per channel from the phase gradient across the band.

    Args:
        frequency: Channel frequencies in MHz.
        phase: Channel phases.
        phase_in_degrees: Phases are in degrees rather than radians.
    """
    if len(frequency) < 2:
        return np.zeros(len(frequency))
    radians = np.deg2rad(phase) if phase_in_degrees else np.asarray(phase)
    unwrapped = np.unwrap(radians)
    gradient = np.gradient(unwrapped, frequency)
    # rad/MHz to ns
    return gradient / (2 * np.pi) * 1e3


def average_block(
    block: AmpPhaseBlock,
    num_average: int,
    method: int,
    phase_in_degrees: bool = True
) -> AmpPhaseBlock:
    """Returns a channel-averaged copy of an amplitude/phase block.

    Channels are grouped in chunks of `num_average`. Only unflagged
    channels contribute to a chunk; chunks without any unflagged
    channel get zero weight. Vector averaging combines the complex
    visibilities and derives amplitude and phase from the result,
    scalar averaging combines amplitudes and phases directly.

    Args:
        block: Block to average.
        num_average: Number of channels per averaged channel.
        method: Combination of `AveragingMethod` bits.
        phase_in_degrees: Phases are in degrees rather than radians.
    """
    num_average = max(1, int(num_average))
    use_median = bool(method & AveragingMethod.MEDIAN)
    scalar = bool(method & AveragingMethod.SCALAR)
    starts = list(range(0, block.nchannels, num_average))

    weight, amplitude, phase, raw, flagged = [], [], [], [], []
    for i in range(block.nbaselines):
        bl_weight, bl_amp, bl_phase, bl_raw = [], [], [], []
        for b in range(block.nbins(i)):
            good = block.good_channels(i, b)
            chunk_weight = np.zeros(len(starts))
            chunk_amp = np.zeros(len(starts))
            chunk_phase = np.zeros(len(starts))
            chunk_raw = np.zeros(len(starts), dtype=np.complex128)
            for c, start in enumerate(starts):
                sel = slice(start, start + num_average)
                mask = good[sel]
                if not np.any(mask):
                    continue
                vis = block.raw[i][b][sel][mask]
                chunk_weight[c] = np.sum(block.weight[i][b][sel][mask])
                chunk_raw[c] = chunk_average(vis, len(vis), use_median)[0]
                if scalar:
                    chunk_amp[c] = chunk_average(
                        block.amplitude[i][b][sel][mask], len(vis), use_median
                    )[0]
                    chunk_phase[c] = chunk_circular_average(
                        block.phase[i][b][sel][mask], len(vis), phase_in_degrees
                    )[0]
                else:
                    chunk_amp[c] = np.abs(chunk_raw[c])
                    chunk_phase[c] = np.angle(chunk_raw[c], deg=phase_in_degrees)
            bl_weight.append(chunk_weight)
            bl_amp.append(chunk_amp)
            bl_phase.append(chunk_phase)
            bl_raw.append(chunk_raw)
        weight.append(bl_weight)
        amplitude.append(bl_amp)
        phase.append(bl_phase)
        raw.append(bl_raw)
        flagged.append(np.zeros(block.nbins(i), dtype=np.int64))

    return AmpPhaseBlock(
        block.window,
        block.window_name,
        block.pol,
        block.obs_date,
        block.ut_seconds,
        chunk_average(block.channel, num_average),
        chunk_average(block.frequency, num_average),
        block.baseline.copy(),
        flagged,
        weight,
        amplitude,
        phase,
        raw,
        scantype=block.scantype,
        options_index=block.options_index,
    )
