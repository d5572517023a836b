"""Abstract graphics capability used by the plot composers.

The composers draw through a small PGPLOT-like interface so that
the operators' familiar colour and line style indices are kept.
Coordinates are either normalised device coordinates (NDC, 0 to 1
over the whole surface) or world coordinates set by `window`.
"""

from enum import auto, Enum
from typing import Final, Protocol, Sequence


class Units(Enum):
    """Units for query results."""

    NDC = auto()
    """Normalised device coordinates."""

    PIXELS = auto()
    """Device pixels."""

    WORLD = auto()
    """World coordinates of the current window."""

    VIEWPORT = auto()
    """Fraction of the current viewport."""


PGPLOT_COLOURS: Final[list[tuple[float, float, float]]] = [
    (0.0, 0.0, 0.0),
    (1.0, 1.0, 1.0),
    (1.0, 0.0, 0.0),
    (0.0, 1.0, 0.0),
    (0.0, 0.0, 1.0),
    (0.0, 1.0, 1.0),
    (1.0, 0.0, 1.0),
    (1.0, 1.0, 0.0),
    (1.0, 0.5, 0.0),
    (0.5, 1.0, 0.0),
    (0.0, 1.0, 0.5),
    (0.0, 0.5, 1.0),
    (0.5, 0.0, 1.0),
    (1.0, 0.0, 0.5),
    (0.333, 0.333, 0.333),
    (0.667, 0.667, 0.667),
]
"""Standard PGPLOT colour table (index 0 is the background)."""

GUIDE_COLOUR: Final[int] = 17
"""Reserved colour of guide lines, outside the indexes used for data."""

RESERVED_COLOURS: Final[dict[int, tuple[float, float, float]]] = {
    GUIDE_COLOUR: (0.5, 0.5, 0.5),
}
"""Colours beyond the standard table that are never wrapped."""

LINESTYLE_FULL: Final[int] = 1
"""Full line."""

LINESTYLE_DASHED: Final[int] = 2
"""Dashed line."""

LINESTYLE_DOT_DASH: Final[int] = 3
"""Dot-dash-dot-dash line."""

LINESTYLE_DOTTED: Final[int] = 4
"""Dotted line."""

LINESTYLE_DASH_DOT_DOT: Final[int] = 5
"""Dash-dot-dot-dot line."""

NUM_LINESTYLES: Final[int] = 5
"""Number of distinct line styles."""

DEFAULT_CHARHEIGHT: Final[float] = 1.0
"""Character height after opening a device."""

CHARHEIGHT_FRACTION: Final[float] = 1 / 40
"""Surface height fraction of a character of height 1."""


def wrap_colour(colour: int, palette_size: int = len(PGPLOT_COLOURS)) -> int:
    """Maps any colour index onto the drawable colours 1..palette_size-1."""
    drawable = palette_size - 1
    return ((colour - 1) % drawable) + 1


class GraphicsDevice(Protocol):
    """Drawing operations the composers rely on."""

    def open(self, name: str) -> int:
        """Opens a device like '/xs' or 'plot.png/png' and selects it."""

    def select(self, device_id: int) -> None:
        """Makes an open device current."""

    def close(self) -> None:
        """Closes the current device, writing files where needed."""

    def page(self) -> None:
        """Clears the current device for a new page."""

    def update(self) -> None:
        """Flushes pending drawing to the screen."""

    def process_events(self) -> None:
        """Services the window system of every open screen device."""

    def viewport(self, x1: float, x2: float, y1: float, y2: float) -> None:
        """Sets the viewport in NDC."""

    def window(self, x1: float, x2: float, y1: float, y2: float) -> None:
        """Sets the world coordinates of the viewport."""

    def box(self, xopts: str, yopts: str) -> None:
        """Draws axes and labels around the viewport."""

    def line(self, xs: Sequence[float], ys: Sequence[float]) -> None:
        """Draws a polyline in world coordinates."""

    def text(
        self, side: str, displacement: float, fraction_along: float,
        justification: float, s: str
    ) -> None:
        """Writes text relative to the viewport edge `side` (T, B, L, R)."""

    def world_text(
        self, x: float, y: float, angle: float, justification: float, s: str
    ) -> None:
        """Writes text at a world coordinate position."""

    def set_colour(self, colour: int) -> None:
        """Sets the colour index."""

    def set_linestyle(self, style: int) -> None:
        """Sets the line style index."""

    def set_charheight(self, height: float) -> None:
        """Sets the character height."""

    def query_charheight(self) -> float:
        """Returns the character height."""

    def query_text_bounds(self, s: str, units: Units) -> tuple[float, float]:
        """Returns width and height of a string in the given units."""

    def query_viewport(self, units: Units) -> tuple[float, float, float, float]:
        """Returns the current viewport (x1, x2, y1, y2)."""
