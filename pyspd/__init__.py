"""PySPD - Interactive plotting clients for a radio correlator.

This package comprises the following submodules that provide the
backend for the network spectrum display (`nspd`) and the network
visibility display (`nvis`), which talk to a correlator data server
and draw through a PGPLOT-compatible graphics capability backed by
`matplotlib`.

Version: 0.1.0

Submodules:

- `pyspd.client`: Module starting and stopping the interactive clients.
- `pyspd.commands`: Module interpreting single command lines into actions.
- `pyspd.controls`: Module holding the SPD and VIS plot control state.
- `pyspd.converter`: Module providing time and date conversion functions.
- `pyspd.errors`: Module with the exception hierarchy.
- `pyspd.files`: Module for file handling.
- `pyspd.helpers`: Module with miscellaneous helper functions.
- `pyspd.network`: Module handling the connection to the data server.
- `pyspd.packing`: Module packing and unpacking wire messages.
- `pyspd.panels`: Module dividing a plot surface into panels.
- `pyspd.session`: Module with the session controller event loop.
- `pyspd.spd_plot`: Module composing spectrum plots.
- `pyspd.terminal`: Module handling the operator terminal.
- `pyspd.vis_plot`: Module composing visibility time-series plots.
"""

from __future__ import annotations
import logging

# Prevent "No handler could be found" warnings for library users.
logging.getLogger(__name__).addHandler(logging.NullHandler())

_PKG = __name__

def get_logger(name: str | None = None) -> logging.Logger:
    """Return a namespaced logger: 'pyspd' or 'pyspd.<name>'."""
    if name and name.startswith(_PKG):
        return logging.getLogger(name)
    return logging.getLogger(f"{_PKG}.{name}" if name else _PKG)

def set_default_level(level: int) -> None:
    """Lightweight helper for apps/tests.

    Note:
        Libraries should not call basicConfig.
    """
    logging.getLogger(_PKG).setLevel(level)
