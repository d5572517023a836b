"""Module with data containers for correlator cycles.

The containers mirror what the data server sends for one correlator
integration cycle: a scan header, per-window per-polarisation
amplitude/phase blocks, system calibration tables and site
meteorological data. Arrays are `numpy` arrays indexed as
`[baseline][bin][channel]` where the bin count may differ per
baseline.
"""

from dataclasses import dataclass, field
from enum import IntFlag
from typing import Final

import numpy as np
import numpy.typing as npt

from pyspd import converter


POL_XX: Final[int] = 3
"""Code of the XX (AA) polarisation product."""

POL_YY: Final[int] = 4
"""Code of the YY (BB) polarisation product."""

POL_XY: Final[int] = 5
"""Code of the XY (AB) polarisation product."""

POL_YX: Final[int] = 6
"""Code of the YX (BA) polarisation product."""

POL_LABELS: Final[dict[int, str]] = {
    POL_XX: 'AA', POL_YY: 'BB', POL_XY: 'AB', POL_YX: 'BA'
}
"""Operator labels of the polarisation products."""

FLAG_BAD: Final[int] = 1
"""Value of a flag marking bad data."""

BASELINE_FACTOR: Final[int] = 256
"""Multiplier of the first antenna in a baseline number."""


class AveragingMethod(IntFlag):
    """Bits describing how channels are averaged."""

    VECTOR = 1
    SCALAR = 2
    MEAN = 4
    MEDIAN = 8


def ants_to_base(ant1: int, ant2: int) -> int:
    """Encodes an antenna pair as a baseline number."""
    return BASELINE_FACTOR * ant1 + ant2


def base_to_ants(baseline: int) -> tuple[int, int]:
    """Decodes a baseline number into its antenna pair."""
    ant1, ant2 = divmod(int(baseline), BASELINE_FACTOR)
    return ant1, ant2


def pol_to_vis_name(pol: int, band: int) -> str:
    """Returns the VIS label of a polarisation in band 1 (AA..) or 2 (CC..)."""
    label = POL_LABELS.get(pol, '??')
    if band == 2:
        label = ''.join(chr(ord(c) + 2) for c in label)
    return label


@dataclass
class AmpPhaseOptions:
    """Options the server used to compute amplitudes and phases.

    Per-window lists are indexed by window number minus one.
    """

    phase_in_degrees: bool = True
    """Phases are given in degrees rather than radians."""

    include_flagged_data: bool = False
    """Flagged channels are included in the averages."""

    min_tvchannel: list[int] = field(default_factory=list)
    """Lowest channel of the tvchannel range per window."""

    max_tvchannel: list[int] = field(default_factory=list)
    """Highest channel of the tvchannel range per window."""

    delay_averaging: list[int] = field(default_factory=list)
    """Number of channels averaged together for delays per window."""

    averaging_method: list[int] = field(default_factory=list)
    """Combination of `AveragingMethod` bits per window."""

    @property
    def num_ifs(self) -> int:
        """Number of windows described by the options."""
        return len(self.delay_averaging)

    def ensure_windows(self, num_ifs: int) -> None:
        """Pads the per-window lists with defaults up to `num_ifs`."""
        while len(self.min_tvchannel) < num_ifs:
            self.min_tvchannel.append(0)
        while len(self.max_tvchannel) < num_ifs:
            self.max_tvchannel.append(0)
        while len(self.delay_averaging) < num_ifs:
            self.delay_averaging.append(1)
        while len(self.averaging_method) < num_ifs:
            self.averaging_method.append(
                int(AveragingMethod.VECTOR | AveragingMethod.MEAN)
            )

    def copy(self) -> 'AmpPhaseOptions':
        """Returns an independent copy."""
        return AmpPhaseOptions(
            self.phase_in_degrees,
            self.include_flagged_data,
            list(self.min_tvchannel),
            list(self.max_tvchannel),
            list(self.delay_averaging),
            list(self.averaging_method),
        )


@dataclass
class AmpPhaseBlock:
    """Spectra of all baselines for one window and one polarisation."""

    window: int
    """Window number (starting at 1)."""

    window_name: str
    """Window label, 'f<n>' for continuum or 'z<n>' for zoom bands."""

    pol: int
    """Polarisation code."""

    obs_date: str
    """Observation date as YYYY-MM-DD."""

    ut_seconds: float
    """UT of the cycle in seconds since midnight."""

    channel: npt.NDArray[np.float64]
    """Channel numbers."""

    frequency: npt.NDArray[np.float64]
    """Channel frequencies in MHz."""

    baseline: npt.NDArray[np.int64]
    """Baseline numbers."""

    flagged_bad: list[npt.NDArray[np.int64]]
    """Flags per baseline and bin."""

    weight: list[list[npt.NDArray[np.float64]]]
    """Channel weights per baseline and bin; zero means flagged."""

    amplitude: list[list[npt.NDArray[np.float64]]]
    """Amplitudes per baseline and bin."""

    phase: list[list[npt.NDArray[np.float64]]]
    """Phases per baseline and bin."""

    raw: list[list[npt.NDArray[np.complex128]]]
    """Complex visibilities per baseline and bin."""

    scantype: str = ''
    """Scan type reported by the correlator."""

    options_index: int = 0
    """Index of the options record in the cycle's options table."""

    min_amplitude: npt.NDArray[np.float64] = field(init=False)
    """Smallest amplitude per baseline."""

    max_amplitude: npt.NDArray[np.float64] = field(init=False)
    """Largest amplitude per baseline."""

    min_phase: npt.NDArray[np.float64] = field(init=False)
    """Smallest phase per baseline."""

    max_phase: npt.NDArray[np.float64] = field(init=False)
    """Largest phase per baseline."""

    min_real: npt.NDArray[np.float64] = field(init=False)
    """Smallest real part per baseline."""

    max_real: npt.NDArray[np.float64] = field(init=False)
    """Largest real part per baseline."""

    min_imag: npt.NDArray[np.float64] = field(init=False)
    """Smallest imaginary part per baseline."""

    max_imag: npt.NDArray[np.float64] = field(init=False)
    """Largest imaginary part per baseline."""

    def __post_init__(self) -> None:
        self.compute_limits()

    @property
    def nchannels(self) -> int:
        """Number of channels."""
        return len(self.channel)

    @property
    def nbaselines(self) -> int:
        """Number of baselines."""
        return len(self.baseline)

    def nbins(self, baseline_idx: int) -> int:
        """Number of bins of a baseline."""
        return len(self.amplitude[baseline_idx])

    def good_channels(self, baseline_idx: int, bin_idx: int) -> npt.NDArray[np.bool_]:
        """Returns a mask of unflagged channels for a baseline and bin."""
        return self.weight[baseline_idx][bin_idx] > 0

    def compute_limits(self) -> None:
        """Computes the per-baseline min/max arrays over unflagged channels."""
        nbase = self.nbaselines
        limits = {
            name: np.zeros(nbase) for name in (
                'min_amplitude', 'max_amplitude', 'min_phase', 'max_phase',
                'min_real', 'max_real', 'min_imag', 'max_imag'
            )
        }
        for i in range(nbase):
            amp_parts, phase_parts, raw_parts = [], [], []
            for b in range(self.nbins(i)):
                mask = self.good_channels(i, b)
                amp_parts.append(self.amplitude[i][b][mask])
                phase_parts.append(self.phase[i][b][mask])
                raw_parts.append(self.raw[i][b][mask])
            if not amp_parts:
                continue
            amps = np.concatenate(amp_parts)
            if amps.size == 0:
                continue
            phases = np.concatenate(phase_parts)
            raws = np.concatenate(raw_parts)
            limits['min_amplitude'][i] = np.min(amps)
            limits['max_amplitude'][i] = np.max(amps)
            limits['min_phase'][i] = np.min(phases)
            limits['max_phase'][i] = np.max(phases)
            limits['min_real'][i] = np.min(raws.real)
            limits['max_real'][i] = np.max(raws.real)
            limits['min_imag'][i] = np.min(raws.imag)
            limits['max_imag'][i] = np.max(raws.imag)
        for name, values in limits.items():
            setattr(self, name, values)

    def baseline_index(self, ant1: int, ant2: int) -> int:
        """Returns the index of a baseline or -1 if it is not present."""
        matches = np.nonzero(self.baseline == ants_to_base(ant1, ant2))[0]
        return int(matches[0]) if len(matches) else -1


@dataclass
class ScanHeader:
    """Header information of the scan a cycle belongs to."""

    obs_date: str
    """Observation date as YYYY-MM-DD."""

    ut_seconds: float
    """UT of the cycle in seconds since midnight."""

    source_name: str
    """Name of the observed source."""

    cycle_time: int
    """Integration cycle time in seconds."""

    if_name: list[str]
    """Window labels, e.g. ['f1', 'f2', 'z1']."""

    if_centre_freq: list[float]
    """Centre frequency of each window in MHz."""

    ant_cartesian: npt.NDArray[np.float64]
    """Antenna positions (antenna x 3) in metres."""

    obstype: str = ''
    """Observation type."""

    calcode: str = ''
    """Calibrator code of the source."""

    rightascension_hours: float = 0.0
    """Right ascension of the source in hours."""

    declination_degrees: float = 0.0
    """Declination of the source in degrees."""

    if_bandwidth: list[float] = field(default_factory=list)
    """Bandwidth of each window in MHz."""

    if_num_channels: list[int] = field(default_factory=list)
    """Number of channels of each window."""

    @property
    def num_ifs(self) -> int:
        """Number of windows."""
        return len(self.if_name)

    @property
    def num_ants(self) -> int:
        """Number of antennas with known positions."""
        return len(self.ant_cartesian)

    @property
    def mjd(self) -> float:
        """MJD of the cycle."""
        return converter.date2mjd(self.obs_date, self.ut_seconds)

    def find_if_name(self, label: str) -> int:
        """Returns the window number (starting at 1) for a label, or -1.

        Both the full label (e.g. 'f2') and a bare number are accepted.
        """
        label = label.lower()
        for i, name in enumerate(self.if_name):
            if name.lower() == label:
                return i + 1
        if label.isdigit() and 1 <= int(label) <= self.num_ifs:
            return int(label)
        return -1

    def baseline_length(self, ant1: int, ant2: int) -> float:
        """Geometric distance between two antennas in metres."""
        if max(ant1, ant2) > self.num_ants:
            return 0.0
        delta = self.ant_cartesian[ant2 - 1] - self.ant_cartesian[ant1 - 1]
        return float(np.sqrt(np.sum(delta**2)))


@dataclass
class SyscalData:
    """System calibration tables indexed as [antenna][window][pol].

    The pol axis holds XX at index 0 and YY at index 1.
    """

    obs_date: str
    """Observation date as YYYY-MM-DD."""

    ut_seconds: float
    """UT of the cycle in seconds since midnight."""

    if_num: list[int]
    """Window numbers described by the tables."""

    ant_num: list[int]
    """Antenna numbers described by the tables."""

    flagging: npt.NDArray[np.int64]
    """Flag word per antenna; bit 0 set means off source."""

    online_tsys: npt.NDArray[np.float64]
    """System temperature measured online in K."""

    computed_tsys: npt.NDArray[np.float64]
    """System temperature computed by the server in K, <= 0 if absent."""

    gtp: npt.NDArray[np.float64]
    """Gated total power."""

    sdo: npt.NDArray[np.float64]
    """Synchronously demodulated output."""

    caljy: npt.NDArray[np.float64]
    """Noise diode calibration in Jy."""

    @property
    def num_ants(self) -> int:
        """Number of antennas in the tables."""
        return len(self.ant_num)

    @property
    def num_ifs(self) -> int:
        """Number of windows in the tables."""
        return len(self.if_num)

    def ant_index(self, antenna: int) -> int:
        """Row of an antenna or -1."""
        return self.ant_num.index(antenna) if antenna in self.ant_num else -1

    def if_index(self, window: int) -> int:
        """Column of a window or -1."""
        return self.if_num.index(window) if window in self.if_num else -1

    def on_source_string(self, max_antennas: int) -> str:
        """Antenna digits for antennas on source, '-' otherwise."""
        chars = []
        for antenna in range(1, max_antennas + 1):
            idx = self.ant_index(antenna)
            if idx >= 0 and not int(self.flagging[idx]) & 1:
                chars.append(str(antenna))
            else:
                chars.append('-')
        return ''.join(chars)


@dataclass
class MetInfo:
    """Site weather and seeing monitor data for a cycle."""

    obs_date: str = ''
    """Observation date as YYYY-MM-DD."""

    ut_seconds: float = 0.0
    """UT of the cycle in seconds since midnight."""

    temperature: float = 0.0
    """Air temperature in C."""

    air_pressure: float = 0.0
    """Air pressure in hPa."""

    humidity: float = 0.0
    """Relative humidity in %."""

    wind_speed: float = 0.0
    """Wind speed in km/h."""

    wind_direction: float = 0.0
    """Wind direction in degrees."""

    rain_gauge: float = 0.0
    """Rain gauge reading in mm."""

    wind_storm: bool = False
    """Wind stow condition."""

    seemon_phase: float = 0.0
    """Seeing monitor phase in degrees."""

    seemon_rms: float = 0.0
    """Seeing monitor path RMS in microns."""

    seemon_flag: bool = False
    """Seeing monitor data are flagged."""


@dataclass
class SpectrumData:
    """All spectra of one cycle."""

    header: ScanHeader
    """Scan header of the cycle."""

    spectrum: list[list[AmpPhaseBlock]]
    """Amplitude/phase blocks indexed [window][pol]."""

    syscal: SyscalData | None = None
    """System calibration of the cycle."""

    metinfo: MetInfo | None = None
    """Weather data of the cycle."""

    options: list[AmpPhaseOptions] = field(default_factory=list)
    """Options table referenced by `AmpPhaseBlock.options_index`."""

    @property
    def num_ifs(self) -> int:
        """Number of windows."""
        return len(self.spectrum)

    @property
    def num_pols(self) -> int:
        """Number of polarisations per window."""
        return len(self.spectrum[0]) if self.spectrum else 0

    @property
    def mjd(self) -> float:
        """MJD of the cycle."""
        first = self.spectrum[0][0]
        return converter.date2mjd(first.obs_date, first.ut_seconds)

    def find_pol(self, window_index: int, pol: int) -> int:
        """Index of a polarisation within a window or -1."""
        for i, block in enumerate(self.spectrum[window_index]):
            if block.pol == pol:
                return i
        return -1

    def block_options(self, block: AmpPhaseBlock) -> AmpPhaseOptions:
        """Options record a block was computed with."""
        if 0 <= block.options_index < len(self.options):
            return self.options[block.options_index]
        return AmpPhaseOptions()


@dataclass
class VisQuantity:
    """Channel-averaged quantities of all baselines for one window and pol."""

    window: int
    """Window number (starting at 1)."""

    pol: int
    """Polarisation code."""

    obs_date: str
    """Observation date as YYYY-MM-DD."""

    ut_seconds: float
    """UT of the cycle in seconds since midnight."""

    baseline: npt.NDArray[np.int64]
    """Baseline numbers."""

    flagged_bad: npt.NDArray[np.int64]
    """Number of flagged bins per baseline; non-zero excludes the point."""

    amplitude: list[npt.NDArray[np.float64]]
    """Averaged amplitude per baseline and bin."""

    phase: list[npt.NDArray[np.float64]]
    """Averaged phase per baseline and bin."""

    delay: list[npt.NDArray[np.float64]]
    """Averaged delay in ns per baseline and bin."""

    scantype: str = ''
    """Scan type reported by the correlator."""

    options_index: int = 0
    """Index of the options record in the response's options table."""

    def baseline_index(self, ant1: int, ant2: int) -> int:
        """Returns the index of a baseline or -1 if it is not present."""
        matches = np.nonzero(self.baseline == ants_to_base(ant1, ant2))[0]
        return int(matches[0]) if len(matches) else -1


@dataclass
class VisCycle:
    """Visibility quantities and metadata of one cycle."""

    header: ScanHeader
    """Scan header of the cycle."""

    quantities: list[list[VisQuantity]]
    """Quantities indexed [window][pol]."""

    metinfo: MetInfo | None = None
    """Weather data of the cycle."""

    syscal: SyscalData | None = None
    """System calibration of the cycle."""

    @property
    def num_ifs(self) -> int:
        """Number of windows present in the cycle."""
        return len(self.quantities)


@dataclass
class VisData:
    """History of visibility cycles sent by the server."""

    cycles: list[VisCycle] = field(default_factory=list)
    """Cycles in time order."""

    options: list[AmpPhaseOptions] = field(default_factory=list)
    """Options table referenced by `VisQuantity.options_index`."""

    @property
    def num_cycles(self) -> int:
        """Number of cycles."""
        return len(self.cycles)
