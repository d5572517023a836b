"""Graphics devices implemented with matplotlib.

Each open device owns one figure. Screen devices ('/xs', '/xw')
use a pyplot window that is updated without blocking; file devices
('name.png/png', 'name.ps/cps') draw into an off-screen figure that
is written when the device is closed.

Drawing follows PGPLOT conventions: a viewport in normalised device
coordinates is mapped onto a world window, lines are clipped to the
viewport and text positions are measured in character heights.
"""

from dataclasses import dataclass, field
from typing import Sequence

import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from matplotlib.font_manager import FontProperties
from matplotlib.textpath import TextPath
from matplotlib.ticker import FuncFormatter, NullFormatter

from pyspd import converter
from pyspd import get_logger
from pyspd.device.device_config import DeviceConfig
from pyspd.device import graphics
from pyspd.device.graphics import Units
from pyspd.errors import DeviceError


log = get_logger(__name__)

SCREEN_TYPES = ('xs', 'xw', 'xserve')
"""Device types drawing to a screen window."""

FILE_TYPES = {
    'png': 'png',
    'tpng': 'png',
    'ps': 'ps',
    'cps': 'ps',
    'vps': 'ps',
    'vcps': 'ps',
}
"""Device types writing files, mapped to the matplotlib format."""

_DASHES = {
    graphics.LINESTYLE_FULL: '-',
    graphics.LINESTYLE_DASHED: (0, (6, 4)),
    graphics.LINESTYLE_DOT_DASH: (0, (1, 3, 6, 3)),
    graphics.LINESTYLE_DOTTED: (0, (1, 3)),
    graphics.LINESTYLE_DASH_DOT_DOT: (0, (6, 3, 1, 3, 1, 3, 1, 3)),
}

_FONT = FontProperties(family=['sans-serif'])


def parse_device_name(name: str) -> tuple[str, str]:
    """Splits 'file/type' into (file, type); the file may be empty."""
    if '/' not in name:
        raise DeviceError(f'Device specification "{name}" has no type')
    filename, dev_type = name.rsplit('/', 1)
    return filename, dev_type.lower()


@dataclass
class _Surface:
    """State of one open device."""

    figure: Figure
    filename: str
    file_format: str | None
    on_screen: bool
    inverse: bool
    vp: tuple[float, float, float, float] = (0.0, 1.0, 0.0, 1.0)
    win: tuple[float, float, float, float] = (0.0, 1.0, 0.0, 1.0)
    colour: int = 1
    linestyle: int = graphics.LINESTYLE_FULL
    charheight: float = graphics.DEFAULT_CHARHEIGHT
    axes: dict[tuple, Axes] = field(default_factory=dict)


class MplDevice:
    """PGPLOT-like drawing on matplotlib figures."""

    def __init__(self) -> None:
        self._surfaces: dict[int, _Surface] = {}
        self._current: int | None = None
        self._next_id = 1

    @property
    def _surface(self) -> _Surface:
        if self._current is None:
            raise DeviceError('No graphics device is selected')
        return self._surfaces[self._current]

    def open(self, name: str) -> int:
        filename, dev_type = parse_device_name(name)
        size = DeviceConfig.figure_size
        if dev_type in SCREEN_TYPES:
            plt.ion()
            figure = plt.figure(figsize=size, facecolor='black')
            surface = _Surface(figure, '', None, True, False)
        elif dev_type in FILE_TYPES:
            if not filename:
                raise DeviceError(f'Device "{name}" needs a file name')
            file_format = FILE_TYPES[dev_type]
            inverse = file_format == 'ps'
            figure = Figure(
                figsize=size,
                dpi=DeviceConfig.dpi,
                facecolor='white' if inverse else 'black'
            )
            surface = _Surface(figure, filename, file_format, False, inverse)
        else:
            raise DeviceError(f'Unsupported device type "{dev_type}"')
        device_id = self._next_id
        self._next_id += 1
        self._surfaces[device_id] = surface
        self._current = device_id
        surface.vp = self._standard_viewport(surface)
        log.debug('Opened device %d: %s', device_id, name)
        return device_id

    def select(self, device_id: int) -> None:
        if device_id not in self._surfaces:
            raise DeviceError(f'Device {device_id} is not open')
        self._current = device_id

    def close(self) -> None:
        surface = self._surface
        if surface.file_format is not None:
            surface.figure.savefig(
                surface.filename,
                format=surface.file_format,
                facecolor=surface.figure.get_facecolor()
            )
            log.debug('Wrote %s', surface.filename)
        if surface.on_screen:
            plt.close(surface.figure)
        del self._surfaces[self._current]
        self._current = None

    def page(self) -> None:
        surface = self._surface
        surface.figure.clear()
        surface.axes.clear()

    def update(self) -> None:
        surface = self._surface
        if surface.on_screen:
            surface.figure.canvas.draw_idle()
            surface.figure.canvas.flush_events()

    def process_events(self) -> None:
        for surface in self._surfaces.values():
            if surface.on_screen:
                surface.figure.canvas.flush_events()

    def viewport(self, x1: float, x2: float, y1: float, y2: float) -> None:
        self._surface.vp = (x1, x2, y1, y2)

    def window(self, x1: float, x2: float, y1: float, y2: float) -> None:
        self._surface.win = (x1, x2, y1, y2)

    def box(self, xopts: str, yopts: str) -> None:
        surface = self._surface
        ax = self._axes()
        ax.set_axis_on()
        colour = self._rgb(surface.colour)
        xopts = xopts.upper()
        yopts = yopts.upper()
        ax.spines['bottom'].set_visible('B' in xopts)
        ax.spines['top'].set_visible('C' in xopts)
        ax.spines['left'].set_visible('B' in yopts)
        ax.spines['right'].set_visible('C' in yopts)
        for spine in ax.spines.values():
            spine.set_color(colour)
        fontsize = self._fontsize()
        ax.tick_params(
            axis='x', which='both', direction='in', colors=colour,
            bottom='T' in xopts and 'B' in xopts,
            top='T' in xopts and 'C' in xopts,
            labelbottom='N' in xopts, labeltop='M' in xopts,
            labelsize=fontsize
        )
        ax.tick_params(
            axis='y', which='both', direction='in', colors=colour,
            left='T' in yopts and 'B' in yopts,
            right='T' in yopts and 'C' in yopts,
            labelleft='N' in yopts, labelright='M' in yopts,
            labelsize=fontsize
        )
        if 'S' in xopts:
            ax.minorticks_on()
        if 'Z' in xopts:
            ax.xaxis.set_major_formatter(FuncFormatter(
                lambda value, _: converter.seconds_to_hourlabel(value % 86400)
            ))
        if 'N' not in xopts and 'M' not in xopts:
            ax.xaxis.set_major_formatter(NullFormatter())

    def line(self, xs: Sequence[float], ys: Sequence[float]) -> None:
        surface = self._surface
        if len(xs) == 0:
            return
        ax = self._axes()
        ax.plot(
            list(xs), list(ys),
            color=self._rgb(surface.colour),
            linestyle=_DASHES.get(surface.linestyle, '-'),
            linewidth=0.8
        )

    def text(
        self, side: str, displacement: float, fraction_along: float,
        justification: float, s: str
    ) -> None:
        surface = self._surface
        x1, x2, y1, y2 = surface.vp
        ch_y = self._charheight_ndc()
        ch_x = ch_y * self._aspect()
        side = side.upper()
        rotation = 0
        if side.startswith('T'):
            x = x1 + fraction_along * (x2 - x1)
            y = y2 + displacement * ch_y
        elif side.startswith('B'):
            x = x1 + fraction_along * (x2 - x1)
            y = y1 - displacement * ch_y - ch_y
        elif side.startswith('L'):
            x = x1 - displacement * ch_x
            y = y1 + fraction_along * (y2 - y1)
            rotation = 0 if 'V' in side else 90
        elif side.startswith('R'):
            x = x2 + displacement * ch_x
            y = y1 + fraction_along * (y2 - y1)
            rotation = 0 if 'V' in side else 90
        else:
            raise ValueError(f'Unknown text side "{side}"')
        surface.figure.text(
            x, y, s,
            rotation=rotation,
            ha=self._halign(justification),
            va='baseline',
            color=self._rgb(surface.colour),
            fontsize=self._fontsize(),
        )

    def world_text(
        self, x: float, y: float, angle: float, justification: float, s: str
    ) -> None:
        surface = self._surface
        ax = self._axes()
        ax.text(
            x, y, s,
            rotation=angle,
            ha=self._halign(justification),
            va='baseline',
            color=self._rgb(surface.colour),
            fontsize=self._fontsize(),
            clip_on=False
        )

    def set_colour(self, colour: int) -> None:
        self._surface.colour = colour

    def set_linestyle(self, style: int) -> None:
        self._surface.linestyle = style

    def set_charheight(self, height: float) -> None:
        self._surface.charheight = height

    def query_charheight(self) -> float:
        return self._surface.charheight

    def query_text_bounds(self, s: str, units: Units) -> tuple[float, float]:
        surface = self._surface
        extents = TextPath((0, 0), s, size=self._fontsize(), prop=_FONT).get_extents()
        width_in, height_in = surface.figure.get_size_inches()
        width = extents.width / (width_in * 72)
        height = self._charheight_ndc() if not s else extents.height / (height_in * 72)
        if units == Units.NDC:
            return width, height
        if units == Units.PIXELS:
            dpi = surface.figure.dpi
            return width * width_in * dpi, height * height_in * dpi
        x1, x2, y1, y2 = surface.vp
        width /= (x2 - x1)
        height /= (y2 - y1)
        if units == Units.VIEWPORT:
            return width, height
        wx1, wx2, wy1, wy2 = surface.win
        return width * abs(wx2 - wx1), height * abs(wy2 - wy1)

    def query_viewport(self, units: Units) -> tuple[float, float, float, float]:
        surface = self._surface
        x1, x2, y1, y2 = surface.vp
        if units == Units.PIXELS:
            width_in, height_in = surface.figure.get_size_inches()
            dpi = surface.figure.dpi
            return (x1 * width_in * dpi, x2 * width_in * dpi,
                    y1 * height_in * dpi, y2 * height_in * dpi)
        return x1, x2, y1, y2

    def _standard_viewport(self, surface: _Surface) -> tuple[float, float, float, float]:
        """Viewport leaving four character heights on each side."""
        margin_y = 4 * graphics.CHARHEIGHT_FRACTION * surface.charheight
        width_in, height_in = surface.figure.get_size_inches()
        margin_x = margin_y * height_in / width_in
        return margin_x, 1 - margin_x, margin_y, 1 - margin_y

    def _axes(self) -> Axes:
        """Axes for the current viewport and window, created on demand."""
        surface = self._surface
        key = (surface.vp, surface.win)
        ax = surface.axes.get(key)
        if ax is None:
            x1, x2, y1, y2 = surface.vp
            ax = surface.figure.add_axes(
                (x1, y1, x2 - x1, y2 - y1), label=f'vp{len(surface.axes)}'
            )
            ax.set_xlim(surface.win[0], surface.win[1])
            ax.set_ylim(surface.win[2], surface.win[3])
            ax.set_facecolor('none')
            ax.set_axis_off()
            surface.axes[key] = ax
        return ax

    def _rgb(self, colour: int) -> tuple[float, float, float]:
        surface = self._surface
        if colour in graphics.RESERVED_COLOURS:
            return graphics.RESERVED_COLOURS[colour]
        index = colour
        if index >= len(graphics.PGPLOT_COLOURS):
            index = graphics.wrap_colour(index)
        if surface.inverse and index in (0, 1):
            index = 1 - index
        return graphics.PGPLOT_COLOURS[index]

    def _charheight_ndc(self) -> float:
        return graphics.CHARHEIGHT_FRACTION * self._surface.charheight

    def _fontsize(self) -> float:
        _, height_in = self._surface.figure.get_size_inches()
        return self._charheight_ndc() * height_in * 72

    def _aspect(self) -> float:
        width_in, height_in = self._surface.figure.get_size_inches()
        return height_in / width_in

    @staticmethod
    def _halign(justification: float) -> str:
        if justification <= 0.25:
            return 'left'
        if justification >= 0.75:
            return 'right'
        return 'center'
