"""Configuration of the plotting clients.

This module defines the settings of the graphics devices, the data
server connection and the plot layout limits.


Note:
    Settings can be overridden from a JSON file (see
      `files.load_device_config`) before the configuration is locked.
"""

from typing import ClassVar


class DeviceConfig:
    """Class with global client configuration.

    The class variables distribute settings that
    are set dynamically during program start across all
    modules.
    """

    _locked: ClassVar[bool] = False

    screen_device: ClassVar[str] = '/xs'
    """PGPLOT-style specification of the interactive screen device."""

    dump_type: ClassVar[str] = 'png'
    """Default file type of dumps, 'png' or 'ps'."""

    server: ClassVar[str] = ''
    """Host name of the data server; empty means no server."""

    port: ClassVar[int] = 8880
    """TCP port of the data server."""

    username: ClassVar[str] = ''
    """User name sent to the server with each request."""

    max_x_panels: ClassVar[int] = 10
    """Maximum number of panels across."""

    max_y_panels: ClassVar[int] = 10
    """Maximum number of panels down."""

    max_antennas: ClassVar[int] = 6
    """Number of antennas in the array."""

    max_windows: ClassVar[int] = 34
    """Maximum number of frequency windows in a cycle."""

    max_tsys_ifs: ClassVar[int] = 2
    """Maximum number of windows in the SPD system temperature table."""

    palette_size: ClassVar[int] = 16
    """Number of distinct line colours."""

    averaged_colour_offset: ClassVar[int] = 5
    """Colour index offset of averaged-data overlays."""

    tsys_second_antenna: ClassVar[int | None] = None
    """Antenna whose baselines use the other antenna for Tsys lines.

    None selects the highest-numbered antenna in the active array.
    """

    margin_reduction: ClassVar[float] = 1.5
    """Factor by which the default plot margins are reduced."""

    figure_size: ClassVar[tuple[float, float]] = (11.0, 8.5)
    """Size of the plotting surface in inches."""

    dpi: ClassVar[int] = 100
    """Resolution of raster output in dots per inch."""

    @classmethod
    def set(cls, key, value) -> None:
        """Set a configuration attribute."""
        if cls._locked:
            raise RuntimeError(
                f'Cannot modify DeviceConfig after locking (tried to set "{key}")'
            )
        if not hasattr(cls, key):
            raise AttributeError(
                f'DeviceConfig has no attribute "{key}"'
            )
        if key == 'figure_size':
            value = tuple(value)
        setattr(cls, key, value)

    @classmethod
    def lock(cls) -> None:
        """Lock the device configuration to prevent modification."""
        cls._locked = True

    @classmethod
    def unlock(cls) -> None:
        """Unlock the configuration, e.g. between tests."""
        cls._locked = False

    def __str__(self) -> str:
        """Returns device configuration as text."""
        return f'''
            Client configuration: \n
            Screen device: {self.screen_device} \n
            Dump type: {self.dump_type} \n
            Server: {self.server or '(none)'}:{self.port} \n
            User: {self.username or '(none)'} \n
            Max panels: {self.max_x_panels} x {self.max_y_panels} \n
            Tsys second antenna: {self.tsys_second_antenna or 'highest active'} \n
        '''
