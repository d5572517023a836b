"""Network visibility display (nvis).

This script shows how channel-averaged visibilities, system
calibration values and site weather develop over the last cycles.
Each panel shows one quantity against time for the selected
baselines and bands.

Commands typed at the prompt change the display, e.g.
`plot amp phase systemp`, `history 1h`, `select 12aa 3b`, `sort`,
`limits phase -180 180` and `dump`.

Run the following command to start:
    nvis -s <server> [-p <port>] [-u <user>]

Note:
    The default server, port, devices and the Tsys antenna rule can be
      set in `pyspd_config.json` in the working directory.
"""

import argparse
import sys

from pyspd import client
from pyspd.session import Mode
import pyspd.pyspd_logger as pyspd_logger


logger = pyspd_logger.get_pyspd_logger('PySPD nvis')


def main(
    device: str | None = None,
    dump_type: str | None = None,
    port: int | None = None,
    server: str | None = None,
    username: str | None = None,
    verbose: bool = False,
    config: str | None = None
) -> int:
    """Main function running the visibility display."""
    logger.info('nvis started.')
    client.configure(config, {'server': server, 'port': port, 'username': username})
    return client.run_client(
        Mode.VIS, logger, device=device, dump_type=dump_type, verbose=verbose
    )


parser = argparse.ArgumentParser(description='PySPD network visibility display')
parser.add_argument(
    '-d', '--device',
    default=argparse.SUPPRESS,
    type=str,
    help='Graphics device for the screen, e.g. /xs.'
)
parser.add_argument(
    '-D', '--dump_type',
    choices=('ps', 'png'),
    default=argparse.SUPPRESS,
    help='File type of dumps without a known extension.'
)
parser.add_argument(
    '-p', '--port',
    default=argparse.SUPPRESS,
    type=int,
    help='Port of the data server.'
)
parser.add_argument(
    '-s', '--server',
    default=argparse.SUPPRESS,
    type=str,
    help='Host name of the data server.'
)
parser.add_argument(
    '-u', '--username',
    default=argparse.SUPPRESS,
    type=str,
    help='User name sent to the server.'
)
parser.add_argument(
    '-v', '--verbose',
    action='store_true',
    default=False,
    help='Show debug messages.'
)
parser.add_argument(
    '--config',
    default=argparse.SUPPRESS,
    type=str,
    help='Path to a configuration JSON file.'
)


def run_cli() -> None:
    """Run main with console arguments"""
    args = parser.parse_args()
    kwargs = vars(args)
    sys.exit(main(**kwargs))


if __name__ == "__main__":
    # Entry point for console module execution
    run_cli()
