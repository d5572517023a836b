"""Start-up and shutdown shared by the nspd and nvis scripts."""

from pathlib import Path
import logging

from pyspd import files
from pyspd import helpers
from pyspd import pyspd_logger
from pyspd.device.device_config import DeviceConfig
from pyspd.device.mpl_device import MplDevice
from pyspd.errors import CodecError, DeviceError, NetworkError
from pyspd.network import ClientType, ServerConnection
from pyspd.session import Mode, Session
from pyspd.terminal import Terminal


def configure(config: str | None, overrides: dict) -> None:
    """Loads the configuration file, applies command-line values and locks."""
    config_path = Path(config or files.DEFAULT_CONFIG_FILE)
    if config is not None or config_path.exists():
        files.load_device_config(config_path)
    for key, value in overrides.items():
        if value is not None:
            DeviceConfig.set(key, value)
    DeviceConfig.lock()


def run_client(
    mode: Mode,
    logger: logging.Logger,
    device: str | None = None,
    dump_type: str | None = None,
    file: str | None = None,
    verbose: bool = False
) -> int:
    """Runs an interactive session until the operator quits.

    Returns:
        Process exit code: 0 after a normal quit, 1 if the server or
        the input file could not be used.
    """
    prompt = 'NSPD> ' if mode == Mode.SPD else 'NVIS> '
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.debug('%s', DeviceConfig())

    data = None
    if file:
        try:
            data = files.load_spectrum_file(file)
        except (OSError, CodecError) as ex:
            logger.error('Cannot read %s: %s', file, ex)
            return 1

    connection = None
    if DeviceConfig.server and data is None:
        connection = ServerConnection(
            DeviceConfig.server,
            DeviceConfig.port,
            helpers.generate_client_id(),
            DeviceConfig.username,
            ClientType.NSPD if mode == Mode.SPD else ClientType.NVIS,
        )
        try:
            connection.connect()
        except NetworkError as ex:
            logger.error('%s', ex)
            return 1

    with Terminal(prompt) as terminal:
        pyspd_logger.setup_logging(level, sink=terminal)
        session = Session(mode, MplDevice(), terminal, connection,
                          device_name=device, dump_type=dump_type)
        try:
            session.start(data)
            session.run()
        except DeviceError as ex:
            logger.error('%s', ex)
            return 1
        except KeyboardInterrupt:
            logger.info('Interrupted')
        finally:
            session.close()
    return 0
