from __future__ import annotations

import pytest

from pyspd.device.device_config import DeviceConfig


@pytest.fixture(autouse=True)
def restore_device_config():
    """Gives every test the default, unlocked configuration."""
    saved = {
        key: value for key, value in vars(DeviceConfig).items()
        if not key.startswith('__') and not callable(value)
        and not isinstance(value, (classmethod, staticmethod))
    }
    DeviceConfig.unlock()
    yield
    for key, value in saved.items():
        setattr(DeviceConfig, key, value)
    DeviceConfig.unlock()
