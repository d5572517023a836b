"""Tests of file handling."""

from __future__ import annotations

from datetime import datetime
import json

import pytest

from helpers import make_spectrum
from pyspd import files
from pyspd.device.device_config import DeviceConfig
from pyspd.device.display_devices import device_for_filename
from pyspd.errors import CodecError


def test_dump_filename() -> None:
    now = datetime(2024, 1, 31, 12, 5, 9)

    assert files.dump_filename('nspd', now) == 'nspd_plot_20240131_120509'
    assert files.dump_filename('nvis', now) == 'nvis_plot_20240131_120509'
    assert files.dump_filename('my:tool', now) == 'mytool_plot_20240131_120509'


@pytest.mark.parametrize(
    'filename, default_type, expected',
    [
        ('plot.png', 'ps', ('plot.png/png', 'plot.png')),
        ('plot.PS', 'png', ('plot.PS/cps', 'plot.PS')),
        ('plot', 'ps', ('plot.ps/cps', 'plot.ps')),
        ('plot.pdf', 'png', ('plot.pdf.png/png', 'plot.pdf.png')),
        ('plot', 'gif', ('plot.png/png', 'plot.png')),
    ],
)
def test_device_for_filename(filename, default_type, expected) -> None:
    assert device_for_filename(filename, default_type) == expected


def test_saved_cycle_loads_back(tmp_path) -> None:
    path = tmp_path / 'cycle.spd'
    data = make_spectrum(windows=('f1', 'f2'))

    files.save_spectrum_file(path, data)
    loaded = files.load_spectrum_file(path)

    assert loaded.header.if_name == ['f1', 'f2']
    assert loaded.mjd == pytest.approx(data.mjd)
    assert loaded.num_pols == 2


def test_loading_a_broken_cycle(tmp_path) -> None:
    path = tmp_path / 'broken.spd'
    path.write_bytes(b'\x01\x02')

    with pytest.raises(CodecError):
        files.load_spectrum_file(path)


def test_loading_a_missing_cycle(tmp_path) -> None:
    with pytest.raises(OSError):
        files.load_spectrum_file(tmp_path / 'missing.spd')


def test_load_json_file(tmp_path) -> None:
    good = tmp_path / 'good.json'
    good.write_text(json.dumps({'port': 9000}), encoding='utf-8')
    bad = tmp_path / 'bad.json'
    bad.write_text('{port', encoding='utf-8')

    assert files.load_json_file(good) == {'port': 9000}
    assert files.load_json_file(bad) == {}
    assert files.load_json_file(tmp_path / 'missing.json') == {}


def test_load_device_config_skips_unknown_keys(tmp_path) -> None:
    path = tmp_path / 'pyspd_config.json'
    path.write_text(json.dumps({
        'dump_type': 'ps', 'server': 'corr01', 'colour_scheme': 'dark'
    }), encoding='utf-8')

    files.load_device_config(path)

    assert DeviceConfig.dump_type == 'ps'
    assert DeviceConfig.server == 'corr01'
    assert not hasattr(DeviceConfig, 'colour_scheme')
