"""Module providing functions for file handling."""

from datetime import datetime
import json
from pathlib import Path
from typing import Any, Final

from pyspd import get_logger
from pyspd import helpers
from pyspd import packing
from pyspd.device.device_config import DeviceConfig
from pyspd.dsp.containers import SpectrumData
from pyspd.errors import CodecError

log = get_logger(__name__)

DEFAULT_CONFIG_FILE: Final[str] = 'pyspd_config.json'
"""Configuration file looked for in the working directory."""

DUMP_PREFIXES: Final[dict[str, str]] = {
    'nspd': 'nspd_plot_',
    'nvis': 'nvis_plot_',
}
"""File name prefix of generated dumps per client."""


def load_json_file(file_path: str | Path) -> dict[str, Any]:
    """Loads the content of a json file."""

    try:
        with open(file_path, 'r', encoding='utf-8') as input_file:
            output_dict = json.load(input_file)
    except FileNotFoundError:
        log.error('Could not load %s. File not found.', file_path)
        output_dict = {}
    except json.JSONDecodeError as e:
        log.error('Could not parse %s - %s.', file_path, e)
        output_dict = {}

    return output_dict


def load_device_config(file_path: str | Path) -> None:
    """Loads device configuration parameters from JSON."""
    config_data = load_json_file(file_path)
    if config_data:
        for key, entry in config_data.items():
            if hasattr(DeviceConfig, key):
                DeviceConfig.set(key, entry)
            else:
                log.warning('Ignoring unknown configuration key %s.', key)
    else:
        log.error('Failed to load device configuration from %s', file_path)


def load_spectrum_file(file_path: str | Path) -> SpectrumData:
    """Reads a stand-alone cycle written by `save_spectrum_file`.

    Raises:
        OSError: The file cannot be read.
        CodecError: The file content is not a valid cycle.
    """
    with open(file_path, 'rb') as input_file:
        payload = input_file.read()
    unpacker = packing.Unpacker(payload)
    data = packing.unpack_spectrum_data(unpacker)
    if not data.spectrum:
        raise CodecError(f'{file_path} contains no spectra')
    log.info('Loaded cycle %s %s from %s.',
             data.header.obs_date, data.header.source_name, file_path)
    return data


def save_spectrum_file(file_path: str | Path, data: SpectrumData) -> None:
    """Writes one cycle in the wire format."""
    packer = packing.Packer()
    packing.pack_spectrum_data(packer, data)
    with open(file_path, 'wb') as output_file:
        output_file.write(packer.getvalue())
    log.info('Cycle saved to %s.', file_path)


def dump_filename(client: str = 'nspd', now: datetime | None = None) -> str:
    """Generates a dump file name like nspd_plot_20240131_120000."""
    if now is None:
        now = datetime.now()
    prefix = DUMP_PREFIXES.get(client, f'{helpers.sanitize_filename_part(client)}_plot_')
    return prefix + now.strftime('%Y%m%d_%H%M%S')
