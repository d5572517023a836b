"""Classes providing the context for the SPD and VIS plots.

This module contains classes that bundle everything a composer needs
to draw one page: the device, the panel geometry, the sanitised
controls and the data.
"""

from dataclasses import dataclass, field

from pyspd.controls import SpdControls, VisControls
from pyspd.device.graphics import GraphicsDevice
from pyspd.dsp.containers import SpectrumData, SyscalData, VisData
from pyspd.panels import PanelGeometry


@dataclass
class PlotContext:
    """Container with the drawing target of a plot."""

    device: GraphicsDevice
    """Graphics device to draw with."""

    panels: PanelGeometry
    """Panel layout of the device."""

    max_antennas: int = 6
    """Number of antennas in the array."""

    palette_size: int = 16
    """Number of distinct line colours."""


@dataclass
class SpdPlotContext(PlotContext):
    """Context of an SPD page."""

    controls: SpdControls = field(default_factory=SpdControls)
    """Controls reconciled with the data."""

    data: SpectrumData | None = None
    """Spectra of the cycle."""

    compiled_tsys: SyscalData | None = None
    """System temperatures restricted to the displayed windows."""

    averaged_colour_offset: int = 5
    """Colour offset of averaged-data overlays."""


@dataclass
class VisPlotContext(PlotContext):
    """Context of a VIS page."""

    controls: VisControls = field(default_factory=VisControls)
    """VIS controls."""

    data: VisData | None = None
    """History of cycles."""

    sort_baselines: bool = True
    """Order lines by increasing baseline length."""

    times: list[float] = field(default_factory=list)
    """UT seconds to mark with vertical guides."""

    tsys_second_antenna: int | None = None
    """Antenna whose baselines use the other antenna for Tsys lines.

    None selects the highest-numbered antenna in the active array.
    """
