"""MessagePack codec of the data exchanged with the correlator server.

A payload is a stream of consecutive MessagePack values. Records are
written field by field in a fixed order; arrays are preceded by their
length and complex arrays are flattened to interleaved real and
imaginary parts. The same encoding is used for stand-alone cycle
files.
"""

from typing import Any

import msgpack
import numpy as np
import numpy.typing as npt

from pyspd import get_logger
from pyspd.dsp.containers import (
    AmpPhaseBlock, AmpPhaseOptions, MetInfo, ScanHeader, SpectrumData,
    SyscalData, VisCycle, VisData, VisQuantity
)
from pyspd.errors import CodecError


log = get_logger(__name__)


class Packer:
    """Writes values to a MessagePack byte stream."""

    def __init__(self) -> None:
        self._packer = msgpack.Packer(use_bin_type=True)
        self._chunks: list[bytes] = []

    def write(self, value: Any) -> None:
        try:
            self._chunks.append(self._packer.pack(value))
        except (TypeError, ValueError, OverflowError) as ex:
            raise CodecError(f'Cannot encode value {value!r}') from ex

    def pack_bool(self, value: bool) -> None:
        self.write(bool(value))

    def pack_int(self, value: int) -> None:
        self.write(int(value))

    def pack_float(self, value: float) -> None:
        self.write(float(value))

    def pack_string(self, value: str) -> None:
        encoded = value.encode('utf-8')
        self.write(len(encoded))
        self.write(value)

    def pack_float_array(self, values: npt.ArrayLike) -> None:
        array = np.asarray(values, dtype=np.float64).ravel()
        self.write(len(array))
        self.write(array.tolist())

    def pack_int_array(self, values: npt.ArrayLike) -> None:
        array = np.asarray(values, dtype=np.int64).ravel()
        self.write(len(array))
        self.write(array.tolist())

    def pack_complex_array(self, values: npt.ArrayLike) -> None:
        array = np.asarray(values, dtype=np.complex128).ravel()
        interleaved = np.empty(2 * len(array))
        interleaved[0::2] = array.real
        interleaved[1::2] = array.imag
        self.write(len(array))
        self.write(interleaved.tolist())

    def pack_string_list(self, values: list[str]) -> None:
        self.pack_int(len(values))
        for value in values:
            self.pack_string(value)

    def getvalue(self) -> bytes:
        """Returns everything written so far."""
        return b''.join(self._chunks)


class Unpacker:
    """Reads values from a MessagePack byte stream.

    Every read checks the type of the value; malformed or truncated
    payloads raise `CodecError`.
    """

    def __init__(self, payload: bytes) -> None:
        self._unpacker = msgpack.Unpacker(raw=False, strict_map_key=False)
        self._unpacker.feed(payload)

    def read(self) -> Any:
        try:
            return next(self._unpacker)
        except StopIteration:
            raise CodecError('Unexpected end of payload') from None
        except ValueError as ex:
            raise CodecError(f'Malformed payload: {ex}') from ex

    def _read_typed(self, kinds: tuple[type, ...], what: str) -> Any:
        value = self.read()
        if isinstance(value, bool) and bool not in kinds:
            raise CodecError(f'Expected {what}, got a boolean')
        if not isinstance(value, kinds):
            raise CodecError(f'Expected {what}, got {type(value).__name__}')
        return value

    def unpack_bool(self) -> bool:
        return self._read_typed((bool,), 'a boolean')

    def unpack_int(self) -> int:
        return self._read_typed((int,), 'an integer')

    def unpack_float(self) -> float:
        return float(self._read_typed((int, float), 'a number'))

    def unpack_string(self) -> str:
        length = self.unpack_int()
        value = self._read_typed((str,), 'a string')
        if len(value.encode('utf-8')) != length:
            raise CodecError(f'String length {length} does not match "{value}"')
        return value

    def _unpack_list(self, expected: int | None = None) -> list:
        length = self.unpack_int()
        values = self._read_typed((list,), 'an array')
        if len(values) != (length if expected is None else expected * length):
            raise CodecError(f'Array length {len(values)} does not match {length}')
        return values

    def unpack_float_array(self) -> npt.NDArray[np.float64]:
        try:
            return np.asarray(self._unpack_list(), dtype=np.float64)
        except TypeError as ex:
            raise CodecError('Array has non-numeric elements') from ex

    def unpack_int_array(self) -> npt.NDArray[np.int64]:
        try:
            return np.asarray(self._unpack_list(), dtype=np.int64)
        except TypeError as ex:
            raise CodecError('Array has non-integer elements') from ex

    def unpack_complex_array(self) -> npt.NDArray[np.complex128]:
        try:
            interleaved = np.asarray(self._unpack_list(expected=2), dtype=np.float64)
        except TypeError as ex:
            raise CodecError('Array has non-numeric elements') from ex
        return interleaved[0::2] + 1j * interleaved[1::2]

    def unpack_string_list(self) -> list[str]:
        return [self.unpack_string() for _ in range(self.unpack_int())]


def pack_options(packer: Packer, options: AmpPhaseOptions) -> None:
    options = options.copy()
    options.ensure_windows(max(
        len(options.min_tvchannel), len(options.max_tvchannel),
        len(options.delay_averaging), len(options.averaging_method)
    ))
    packer.pack_bool(options.phase_in_degrees)
    packer.pack_bool(options.include_flagged_data)
    packer.pack_int(options.num_ifs)
    packer.pack_int_array(options.min_tvchannel)
    packer.pack_int_array(options.max_tvchannel)
    packer.pack_int_array(options.delay_averaging)
    packer.pack_int_array(options.averaging_method)


def unpack_options(unpacker: Unpacker) -> AmpPhaseOptions:
    phase_in_degrees = unpacker.unpack_bool()
    include_flagged_data = unpacker.unpack_bool()
    num_ifs = unpacker.unpack_int()
    arrays = [unpacker.unpack_int_array().tolist() for _ in range(4)]
    if any(len(a) != num_ifs for a in arrays):
        raise CodecError(f'Options record does not describe {num_ifs} windows')
    return AmpPhaseOptions(phase_in_degrees, include_flagged_data, *arrays)


def pack_options_table(packer: Packer, options: list[AmpPhaseOptions]) -> None:
    packer.pack_int(len(options))
    for record in options:
        pack_options(packer, record)


def unpack_options_table(unpacker: Unpacker) -> list[AmpPhaseOptions]:
    return [unpack_options(unpacker) for _ in range(unpacker.unpack_int())]


def pack_scan_header(packer: Packer, header: ScanHeader) -> None:
    packer.pack_string(header.obs_date)
    packer.pack_float(header.ut_seconds)
    packer.pack_string(header.source_name)
    packer.pack_int(header.cycle_time)
    packer.pack_string(header.obstype)
    packer.pack_string(header.calcode)
    packer.pack_float(header.rightascension_hours)
    packer.pack_float(header.declination_degrees)
    packer.pack_string_list(header.if_name)
    packer.pack_float_array(header.if_centre_freq)
    packer.pack_float_array(header.if_bandwidth)
    packer.pack_int_array(header.if_num_channels)
    packer.pack_int(header.num_ants)
    packer.pack_float_array(header.ant_cartesian)


def unpack_scan_header(unpacker: Unpacker) -> ScanHeader:
    obs_date = unpacker.unpack_string()
    ut_seconds = unpacker.unpack_float()
    source_name = unpacker.unpack_string()
    cycle_time = unpacker.unpack_int()
    obstype = unpacker.unpack_string()
    calcode = unpacker.unpack_string()
    ra = unpacker.unpack_float()
    dec = unpacker.unpack_float()
    if_name = unpacker.unpack_string_list()
    if_centre_freq = unpacker.unpack_float_array().tolist()
    if_bandwidth = unpacker.unpack_float_array().tolist()
    if_num_channels = unpacker.unpack_int_array().tolist()
    num_ants = unpacker.unpack_int()
    positions = unpacker.unpack_float_array()
    if len(positions) != 3 * num_ants:
        raise CodecError(f'Expected positions of {num_ants} antennas')
    return ScanHeader(
        obs_date, ut_seconds, source_name, cycle_time, if_name,
        if_centre_freq, positions.reshape(num_ants, 3), obstype, calcode,
        ra, dec, if_bandwidth, if_num_channels
    )


def pack_block(packer: Packer, block: AmpPhaseBlock) -> None:
    packer.pack_int(block.window)
    packer.pack_string(block.window_name)
    packer.pack_int(block.pol)
    packer.pack_string(block.obs_date)
    packer.pack_float(block.ut_seconds)
    packer.pack_string(block.scantype)
    packer.pack_int(block.options_index)
    packer.pack_float_array(block.channel)
    packer.pack_float_array(block.frequency)
    packer.pack_int_array(block.baseline)
    for i in range(block.nbaselines):
        packer.pack_int(block.nbins(i))
        packer.pack_int_array(block.flagged_bad[i])
        for b in range(block.nbins(i)):
            packer.pack_float_array(block.weight[i][b])
            packer.pack_float_array(block.amplitude[i][b])
            packer.pack_float_array(block.phase[i][b])
            packer.pack_complex_array(block.raw[i][b])


def unpack_block(unpacker: Unpacker) -> AmpPhaseBlock:
    window = unpacker.unpack_int()
    window_name = unpacker.unpack_string()
    pol = unpacker.unpack_int()
    obs_date = unpacker.unpack_string()
    ut_seconds = unpacker.unpack_float()
    scantype = unpacker.unpack_string()
    options_index = unpacker.unpack_int()
    channel = unpacker.unpack_float_array()
    frequency = unpacker.unpack_float_array()
    baseline = unpacker.unpack_int_array()
    if len(frequency) != len(channel):
        raise CodecError('Channel and frequency arrays differ in length')

    flagged_bad, weight, amplitude, phase, raw = [], [], [], [], []
    for _ in range(len(baseline)):
        nbins = unpacker.unpack_int()
        flagged_bad.append(unpacker.unpack_int_array())
        bins = [[], [], [], []]
        for _ in range(nbins):
            arrays = (
                unpacker.unpack_float_array(),
                unpacker.unpack_float_array(),
                unpacker.unpack_float_array(),
                unpacker.unpack_complex_array(),
            )
            if any(len(a) != len(channel) for a in arrays):
                raise CodecError(f'Bin data of window {window} has the wrong length')
            for collected, array in zip(bins, arrays):
                collected.append(array)
        weight.append(bins[0])
        amplitude.append(bins[1])
        phase.append(bins[2])
        raw.append(bins[3])

    return AmpPhaseBlock(
        window, window_name, pol, obs_date, ut_seconds, channel, frequency,
        baseline, flagged_bad, weight, amplitude, phase, raw, scantype,
        options_index
    )


def pack_syscal(packer: Packer, syscal: SyscalData | None) -> None:
    packer.pack_bool(syscal is not None)
    if syscal is None:
        return
    packer.pack_string(syscal.obs_date)
    packer.pack_float(syscal.ut_seconds)
    packer.pack_int_array(syscal.if_num)
    packer.pack_int_array(syscal.ant_num)
    packer.pack_int_array(syscal.flagging)
    for table in (syscal.online_tsys, syscal.computed_tsys, syscal.gtp,
                  syscal.sdo, syscal.caljy):
        packer.pack_float_array(table)


def unpack_syscal(unpacker: Unpacker) -> SyscalData | None:
    if not unpacker.unpack_bool():
        return None
    obs_date = unpacker.unpack_string()
    ut_seconds = unpacker.unpack_float()
    if_num = unpacker.unpack_int_array().tolist()
    ant_num = unpacker.unpack_int_array().tolist()
    flagging = unpacker.unpack_int_array()
    shape = (len(ant_num), len(if_num), 2)
    tables = []
    for _ in range(5):
        table = unpacker.unpack_float_array()
        if table.size != shape[0] * shape[1] * shape[2]:
            raise CodecError('System calibration table has the wrong size')
        tables.append(table.reshape(shape))
    return SyscalData(obs_date, ut_seconds, if_num, ant_num, flagging, *tables)


def pack_metinfo(packer: Packer, metinfo: MetInfo | None) -> None:
    packer.pack_bool(metinfo is not None)
    if metinfo is None:
        return
    packer.pack_string(metinfo.obs_date)
    packer.pack_float(metinfo.ut_seconds)
    for value in (metinfo.temperature, metinfo.air_pressure, metinfo.humidity,
                  metinfo.wind_speed, metinfo.wind_direction, metinfo.rain_gauge):
        packer.pack_float(value)
    packer.pack_bool(metinfo.wind_storm)
    packer.pack_float(metinfo.seemon_phase)
    packer.pack_float(metinfo.seemon_rms)
    packer.pack_bool(metinfo.seemon_flag)


def unpack_metinfo(unpacker: Unpacker) -> MetInfo | None:
    if not unpacker.unpack_bool():
        return None
    obs_date = unpacker.unpack_string()
    ut_seconds = unpacker.unpack_float()
    weather = [unpacker.unpack_float() for _ in range(6)]
    wind_storm = unpacker.unpack_bool()
    seemon_phase = unpacker.unpack_float()
    seemon_rms = unpacker.unpack_float()
    seemon_flag = unpacker.unpack_bool()
    return MetInfo(obs_date, ut_seconds, *weather, wind_storm,
                   seemon_phase, seemon_rms, seemon_flag)


def pack_spectrum_data(packer: Packer, data: SpectrumData) -> None:
    """Writes the options table followed by the spectra of one cycle."""
    pack_options_table(packer, data.options)
    pack_scan_header(packer, data.header)
    packer.pack_int(data.num_ifs)
    packer.pack_int(data.num_pols)
    for window_blocks in data.spectrum:
        for block in window_blocks:
            pack_block(packer, block)
    pack_syscal(packer, data.syscal)
    pack_metinfo(packer, data.metinfo)


def unpack_spectrum_data(unpacker: Unpacker) -> SpectrumData:
    """Reads what `pack_spectrum_data` writes."""
    options = unpack_options_table(unpacker)
    header = unpack_scan_header(unpacker)
    num_ifs = unpacker.unpack_int()
    num_pols = unpacker.unpack_int()
    spectrum = [
        [unpack_block(unpacker) for _ in range(num_pols)]
        for _ in range(num_ifs)
    ]
    syscal = unpack_syscal(unpacker)
    metinfo = unpack_metinfo(unpacker)
    for window_blocks in spectrum:
        for block in window_blocks:
            if options and not 0 <= block.options_index < len(options):
                raise CodecError(f'Block refers to unknown options record {block.options_index}')
    log.debug('Decoded spectrum of %d windows x %d pols', num_ifs, num_pols)
    return SpectrumData(header, spectrum, syscal, metinfo, options)


def pack_vis_quantity(packer: Packer, quantity: VisQuantity) -> None:
    packer.pack_int(quantity.window)
    packer.pack_int(quantity.pol)
    packer.pack_string(quantity.obs_date)
    packer.pack_float(quantity.ut_seconds)
    packer.pack_string(quantity.scantype)
    packer.pack_int(quantity.options_index)
    packer.pack_int_array(quantity.baseline)
    packer.pack_int_array(quantity.flagged_bad)
    for i in range(len(quantity.baseline)):
        packer.pack_float_array(quantity.amplitude[i])
        packer.pack_float_array(quantity.phase[i])
        packer.pack_float_array(quantity.delay[i])


def unpack_vis_quantity(unpacker: Unpacker) -> VisQuantity:
    window = unpacker.unpack_int()
    pol = unpacker.unpack_int()
    obs_date = unpacker.unpack_string()
    ut_seconds = unpacker.unpack_float()
    scantype = unpacker.unpack_string()
    options_index = unpacker.unpack_int()
    baseline = unpacker.unpack_int_array()
    flagged_bad = unpacker.unpack_int_array()
    if len(flagged_bad) != len(baseline):
        raise CodecError('Flag array does not match the baselines')
    amplitude, phase, delay = [], [], []
    for _ in range(len(baseline)):
        amplitude.append(unpacker.unpack_float_array())
        phase.append(unpacker.unpack_float_array())
        delay.append(unpacker.unpack_float_array())
    return VisQuantity(
        window, pol, obs_date, ut_seconds, baseline, flagged_bad,
        amplitude, phase, delay, scantype, options_index
    )


def pack_vis_data(packer: Packer, data: VisData) -> None:
    """Writes the options table followed by the history of cycles."""
    pack_options_table(packer, data.options)
    packer.pack_int(data.num_cycles)
    for cycle in data.cycles:
        pack_scan_header(packer, cycle.header)
        packer.pack_int(cycle.num_ifs)
        packer.pack_int(len(cycle.quantities[0]) if cycle.quantities else 0)
        for window_quantities in cycle.quantities:
            for quantity in window_quantities:
                pack_vis_quantity(packer, quantity)
        pack_metinfo(packer, cycle.metinfo)
        pack_syscal(packer, cycle.syscal)


def unpack_vis_data(unpacker: Unpacker) -> VisData:
    """Reads what `pack_vis_data` writes."""
    options = unpack_options_table(unpacker)
    cycles = []
    for _ in range(unpacker.unpack_int()):
        header = unpack_scan_header(unpacker)
        num_ifs = unpacker.unpack_int()
        num_pols = unpacker.unpack_int()
        quantities = [
            [unpack_vis_quantity(unpacker) for _ in range(num_pols)]
            for _ in range(num_ifs)
        ]
        metinfo = unpack_metinfo(unpacker)
        syscal = unpack_syscal(unpacker)
        cycles.append(VisCycle(header, quantities, metinfo, syscal))
    log.debug('Decoded %d visibility cycles', len(cycles))
    return VisData(cycles, options)
