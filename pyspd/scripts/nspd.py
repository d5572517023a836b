"""Network spectrum display (nspd).

This script shows the spectra of one correlator cycle per baseline,
window and polarisation, and lets the operator change the plot with
short commands typed at the prompt (e.g. `phase`, `scale log`,
`nxy 3 2`, `channel f1 100 200`, `dump`).

The data either come from a correlator data server, which keeps
sending the latest cycle, or from a single cycle saved to a file.
With a simulator server, the operator can also step through the
cycles the server holds with `forward`, `backward`, `list` and
`get time`.

Run the following command to start:
    nspd -s <server> [-p <port>] [-u <user>]

Note:
    The default server, port, devices and panel limits can be set in
      `pyspd_config.json` in the working directory.
"""

import argparse
import sys

from pyspd import client
from pyspd.session import Mode
import pyspd.pyspd_logger as pyspd_logger


logger = pyspd_logger.get_pyspd_logger('PySPD nspd')


def main(
    device: str | None = None,
    dump_type: str | None = None,
    file: str | None = None,
    port: int | None = None,
    server: str | None = None,
    username: str | None = None,
    verbose: bool = False,
    config: str | None = None
) -> int:
    """Main function running the spectrum display."""
    logger.info('nspd started.')
    client.configure(config, {'server': server, 'port': port, 'username': username})
    return client.run_client(
        Mode.SPD, logger, device=device, dump_type=dump_type, file=file, verbose=verbose
    )


parser = argparse.ArgumentParser(description='PySPD network spectrum display')
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
    '-f', '--file',
    default=argparse.SUPPRESS,
    type=str,
    help='Show a cycle saved to a file instead of connecting to a server.'
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
