"""Division of a plotting surface into a grid of panels.

The surface is split into `nx` x `ny` equally sized plot viewports
with an optional information strip along the top. Both normalised
and pixel rectangles are kept for every panel.
"""

from dataclasses import dataclass, field
from typing import Final

import numpy as np
import numpy.typing as npt

from pyspd.device.graphics import GraphicsDevice, Units


PANEL_ORIGINAL: Final[int] = -1
"""Sentinel selecting the original (full) viewport."""

PANEL_INFORMATION: Final[int] = -2
"""Sentinel selecting the information strip."""

PADDING_FRACTION: Final[float] = 1.8
"""Space between panels as a multiple of the reduced margin."""

INFO_LINE_SPACING: Final[float] = 1.8
"""Height of one information line in character heights."""


@dataclass
class PanelGeometry:
    """Pre-calculated panel positions for a device with nx x ny panels.

    Arrays are indexed [x][y] with x running left to right and y top
    to bottom.
    """

    nx: int = 0
    """Number of panels across."""

    ny: int = 0
    """Number of panels down."""

    x1: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Left edges in NDC."""

    x2: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Right edges in NDC."""

    y1: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Bottom edges in NDC."""

    y2: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Top edges in NDC."""

    px_x1: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Left edges in pixels."""

    px_x2: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Right edges in pixels."""

    px_y1: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Bottom edges in pixels."""

    px_y2: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 0)))
    """Top edges in pixels."""

    orig_x1: float = 0.0
    orig_x2: float = 1.0
    orig_y1: float = 0.0
    orig_y2: float = 1.0
    orig_px_x1: float = 0.0
    orig_px_x2: float = 0.0
    orig_px_y1: float = 0.0
    orig_px_y2: float = 0.0

    measured: bool = False
    """The original viewport has been read from the device.

    The backend remembers viewport changes, so it must only be read once.
    """

    information_x1: float = 0.0
    information_x2: float = 0.0
    information_y1: float = 0.0
    information_y2: float = 0.0

    num_information_lines: int = 0
    """Number of text lines in the information strip."""

    def split(
        self,
        nx: int,
        ny: int,
        device: GraphicsDevice,
        abut: bool = False,
        margin_reduction: float = 1.5,
        info_lines: int = 0
    ) -> None:
        """Divides the device surface into nx x ny panels.

        Args:
            nx: Number of panels across.
            ny: Number of panels down.
            device: Device whose current viewport is split.
            abut: Leave no space between panels.
            margin_reduction: Factor the default margins are divided by.
            info_lines: Number of text lines reserved at the top.
        """
        self.nx = nx
        self.ny = ny
        self.num_information_lines = info_lines

        if not self.measured:
            self._measure(device, margin_reduction, info_lines)

        if abut:
            padding_x = padding_y = padding_px_x = padding_px_y = 0.0
        else:
            padding_x = self.orig_x1 * PADDING_FRACTION
            padding_y = self.orig_y1 * PADDING_FRACTION
            padding_px_x = self.orig_px_x1 * PADDING_FRACTION
            padding_px_y = self.orig_px_y1 * PADDING_FRACTION

        width = (self.orig_x2 - self.orig_x1 - (nx - 1) * padding_x) / nx
        px_width = (self.orig_px_x2 - self.orig_px_x1 - (nx - 1) * padding_px_x) / nx
        height = (self.orig_y2 - self.orig_y1 - (ny - 1) * padding_y) / ny
        px_height = (self.orig_px_y2 - self.orig_px_y1 - (ny - 1) * padding_px_y) / ny

        i = np.arange(nx)[:, np.newaxis] * np.ones((1, ny))
        j = np.ones((nx, 1)) * np.arange(ny)[np.newaxis, :]
        self.x1 = self.orig_x1 + i * (width + padding_x)
        self.x2 = self.x1 + width
        self.y2 = self.orig_y2 - j * (height + padding_y)
        self.y1 = self.y2 - height
        self.px_x1 = self.orig_px_x1 + i * (px_width + padding_px_x)
        self.px_x2 = self.px_x1 + px_width
        self.px_y2 = self.orig_px_y2 - j * (px_height + padding_px_y)
        self.px_y1 = self.px_y2 - px_height

    def _measure(
        self,
        device: GraphicsDevice,
        margin_reduction: float,
        info_lines: int
    ) -> None:
        """Reads and reduces the device's original viewport."""
        (self.orig_px_x1, self.orig_px_x2,
         self.orig_px_y1, self.orig_px_y2) = device.query_viewport(Units.PIXELS)
        (self.orig_x1, self.orig_x2,
         self.orig_y1, self.orig_y2) = device.query_viewport(Units.NDC)

        # Reduce the margins.
        self.orig_x1 /= margin_reduction
        dpx_x = self.orig_px_x1 - self.orig_px_x1 / margin_reduction
        dpx_y = self.orig_px_y1 - self.orig_px_y1 / margin_reduction
        self.orig_px_x1 /= margin_reduction
        self.orig_x2 = 1 - self.orig_x1
        self.orig_px_x2 += dpx_x
        self.orig_y1 /= 0.7 * margin_reduction
        self.orig_px_y1 /= 0.7 * margin_reduction
        self.orig_px_y2 += dpx_y

        charheight = device.query_charheight()
        if info_lines > 0:
            _, line_height = device.query_text_bounds('', Units.NDC)
            strip = info_lines * INFO_LINE_SPACING * line_height
            self.orig_y2 = 1 - self.orig_y1 - strip
            self.information_x1 = self.orig_x1
            self.information_x2 = self.orig_x2
            self.information_y1 = self.orig_y2 + self.orig_y1
            self.information_y2 = 1.0
        else:
            self.orig_y2 = 1 - self.orig_y1
            self.information_x1 = self.information_x2 = 0.0
            self.information_y1 = self.information_y2 = 0.0

        device.set_charheight(charheight / 2)
        self.measured = True

    def select(self, px: int, py: int, device: GraphicsDevice) -> None:
        """Sets the device viewport to a panel or one of the sentinels.

        `(PANEL_ORIGINAL, PANEL_ORIGINAL)` restores the full area,
        `(PANEL_INFORMATION, PANEL_INFORMATION)` selects the information
        strip and `(px, PANEL_ORIGINAL)` selects the strip above column px.
        Other positions outside the grid are ignored.
        """
        if 0 <= px < self.nx and 0 <= py < self.ny:
            device.viewport(self.x1[px, py], self.x2[px, py],
                            self.y1[px, py], self.y2[px, py])
        elif px == PANEL_ORIGINAL and py == PANEL_ORIGINAL:
            device.viewport(self.orig_x1, self.orig_x2, self.orig_y1, self.orig_y2)
        elif px == PANEL_INFORMATION and py == PANEL_INFORMATION:
            device.viewport(self.information_x1, self.information_x2,
                            self.information_y1, self.information_y2)
        elif 0 <= px < self.nx and py == PANEL_ORIGINAL:
            device.viewport(self.x1[px, 0], self.x2[px, 0],
                            self.y2[px, 0], self.information_y1 or 1.0)

    def plotnum_to_xy(self, plotnum: int) -> tuple[int, int]:
        """Column and row of the n-th panel in row-major order."""
        return plotnum % self.nx, plotnum // self.nx

    def reset(self) -> None:
        """Forgets the measurement, e.g. after the device was reopened."""
        self.measured = False
