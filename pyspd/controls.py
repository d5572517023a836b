"""Plot control state for the SPD and VIS plots.

The controls describe what the operator wants to see. Options that
name the same axis or the same scaling form mutually exclusive
groups: before a new value is set, all siblings of its group are
cleared.
"""

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Final

from pyspd import helpers
from pyspd.device.device_config import DeviceConfig
from pyspd.dsp.containers import POL_XX, POL_XY, POL_YX, POL_YY, SpectrumData
from pyspd.errors import CommandError


class PlotOption(IntFlag):
    """General plot option bits."""

    AMPLITUDE = 1 << 0
    PHASE = 1 << 1
    CHANNEL = 1 << 2
    FREQUENCY = 1 << 3
    POL_XX = 1 << 4
    POL_YY = 1 << 5
    POL_XY = 1 << 6
    POL_YX = 1 << 7
    AMPLITUDE_LINEAR = 1 << 8
    AMPLITUDE_LOG = 1 << 9
    CONSISTENT_YRANGE = 1 << 10
    DELAY = 1 << 11
    TIME = 1 << 12
    REAL = 1 << 13
    IMAG = 1 << 14
    TVCHANNELS = 1 << 15
    AVERAGED = 1 << 16


XAXIS_GROUP: Final[PlotOption] = PlotOption.CHANNEL | PlotOption.FREQUENCY | PlotOption.TIME
"""Options selecting the x-axis kind."""

YAXIS_GROUP: Final[PlotOption] = (
    PlotOption.AMPLITUDE | PlotOption.PHASE | PlotOption.REAL
    | PlotOption.IMAG | PlotOption.DELAY
)
"""Options selecting the y-axis kind."""

SCALING_GROUP: Final[PlotOption] = PlotOption.AMPLITUDE_LINEAR | PlotOption.AMPLITUDE_LOG
"""Options selecting the amplitude scaling."""

POL_GROUP: Final[PlotOption] = (
    PlotOption.POL_XX | PlotOption.POL_YY | PlotOption.POL_XY | PlotOption.POL_YX
)
"""Options selecting polarisations."""

POL_OPTIONS: Final[list[tuple[PlotOption, int]]] = [
    (PlotOption.POL_XX, POL_XX),
    (PlotOption.POL_YY, POL_YY),
    (PlotOption.POL_XY, POL_XY),
    (PlotOption.POL_YX, POL_YX),
]
"""Polarisation option bits with their codes, in plotting order."""


class PlotFlag(IntFlag):
    """Bits describing which products are available for plotting."""

    POL_XX = 1 << 1
    POL_YY = 1 << 2
    POL_XY = 1 << 3
    POL_YX = 1 << 4
    AUTOCORRELATIONS = 1 << 5
    CROSSCORRELATIONS = 1 << 6


VIS_PLOT_IF1: Final[int] = 1 << 0
"""First VIS band."""

VIS_PLOT_IF2: Final[int] = 1 << 1
"""Second VIS band."""


def set_exclusive(options: PlotOption, group: PlotOption, value: PlotOption) -> PlotOption:
    """Clears all bits of `group` and sets `value`."""
    return (options & ~group) | (value & group)


@dataclass
class SpdControls:
    """Everything the user controls on an SPD plot."""

    plot_options: PlotOption = (
        PlotOption.CHANNEL | PlotOption.AMPLITUDE | PlotOption.AMPLITUDE_LINEAR
        | PlotOption.POL_XX | PlotOption.POL_YY
    )
    """General plot options."""

    plot_flags: PlotFlag = (
        PlotFlag.POL_XX | PlotFlag.POL_YY
        | PlotFlag.AUTOCORRELATIONS | PlotFlag.CROSSCORRELATIONS
    )
    """Products available for plotting."""

    if_num_spec: list[int] = field(default_factory=lambda: [1] * DeviceConfig.max_windows)
    """1 for each window slot to plot."""

    channel_range_limit: list[bool] = field(
        default_factory=lambda: [False] * DeviceConfig.max_windows
    )
    """A channel range applies to the window."""

    channel_range_min: list[int] = field(default_factory=lambda: [0] * DeviceConfig.max_windows)
    """Lowest channel per window."""

    channel_range_max: list[int] = field(default_factory=lambda: [0] * DeviceConfig.max_windows)
    """Highest channel per window."""

    yaxis_range_limit: bool = False
    """The y-axis range is fixed by the user."""

    yaxis_range_min: float = 0.0
    """Bottom of the fixed y-axis range."""

    yaxis_range_max: float = 0.0
    """Top of the fixed y-axis range."""

    array_spec: int = field(default_factory=helpers.full_array_spec)
    """Bit k set when antenna k is plotted."""

    interactive: bool = True
    """Plots are shown to a waiting operator."""

    device_id: int = 0
    """Graphics device number used for plotting."""

    @property
    def npols(self) -> int:
        """Number of selected polarisations."""
        return sum(1 for option, _ in POL_OPTIONS if self.plot_options & option)

    def change_plotcontrols(
        self,
        xaxis: PlotOption | None = None,
        yaxis: PlotOption | None = None,
        pols: PlotOption | None = None,
        scaling: PlotOption | None = None
    ) -> None:
        """Replaces the x-axis kind, y-axis kind, pols and/or scaling."""
        if xaxis is not None:
            self.plot_options = set_exclusive(self.plot_options, XAXIS_GROUP, xaxis)
        if yaxis is not None:
            self.plot_options = set_exclusive(self.plot_options, YAXIS_GROUP, yaxis)
        if pols is not None:
            self.plot_options = set_exclusive(self.plot_options, POL_GROUP, pols)
        if scaling is not None:
            self.plot_options = set_exclusive(self.plot_options, SCALING_GROUP, scaling)

    def change_plotflags(self, changed: PlotFlag, add: bool) -> bool:
        """Adds or removes plot flags; returns True if anything changed."""
        old = self.plot_flags
        if add:
            self.plot_flags |= changed
        else:
            self.plot_flags &= ~changed
        return self.plot_flags != old

    def toggle_option(self, option: PlotOption, enable: bool) -> bool:
        """Sets or clears an independent option; returns True if changed."""
        old = self.plot_options
        if enable:
            self.plot_options |= option
        else:
            self.plot_options &= ~option
        return self.plot_options != old

    def set_channel_range(self, window_idx: int, cmin: int, cmax: int) -> None:
        """Limits the channels of a window, ordered ascending."""
        if cmin > cmax:
            cmin, cmax = cmax, cmin
        self.channel_range_limit[window_idx] = True
        self.channel_range_min[window_idx] = cmin
        self.channel_range_max[window_idx] = cmax

    def clear_channel_ranges(self) -> None:
        """Removes all channel limits."""
        for w in range(len(self.channel_range_limit)):
            self.channel_range_limit[w] = False
            self.channel_range_min[w] = 0
            self.channel_range_max[w] = 0

    def set_yrange(self, ymin: float, ymax: float) -> None:
        """Fixes the y-axis range, ordered ascending."""
        if ymin > ymax:
            ymin, ymax = ymax, ymin
        self.yaxis_range_limit = True
        self.yaxis_range_min = ymin
        self.yaxis_range_max = ymax

    def clear_yrange(self) -> None:
        """Lets the y-axis range follow the data."""
        self.yaxis_range_limit = False

    def copy(self) -> 'SpdControls':
        """Returns an independent copy."""
        return SpdControls(
            self.plot_options,
            self.plot_flags,
            list(self.if_num_spec),
            list(self.channel_range_limit),
            list(self.channel_range_min),
            list(self.channel_range_max),
            self.yaxis_range_limit,
            self.yaxis_range_min,
            self.yaxis_range_max,
            self.array_spec,
            self.interactive,
            self.device_id,
        )


def reconcile_spd_controls(user: SpdControls, data: SpectrumData) -> SpdControls:
    """Sanitises user controls against the shape of the data.

    Window selections and channel limits are only kept for windows
    the cycle actually contains.
    """
    controls = user.copy()
    for w in range(len(controls.if_num_spec)):
        if w >= data.num_ifs:
            controls.if_num_spec[w] = 0
            controls.channel_range_limit[w] = False
            controls.channel_range_min[w] = 0
            controls.channel_range_max[w] = 0
    return controls


class VisPanelType(Enum):
    """Quantities that can be shown in a VIS panel.

    Each value holds (keyword, axis label, units).
    """

    AMPLITUDE = ('amplitude', 'Amplitude', '(Pseudo-Jy)')
    PHASE = ('phase', 'Phase', '(degrees)')
    DELAY = ('delay', 'Delay', '(ns)')
    SYSTEMP = ('systemp', 'Tsys', '(K)')
    SYSTEMP_COMPUTED = ('systemp_computed', 'Computed Tsys', '(K)')
    GTP = ('gtp', 'GTP', '')
    SDO = ('sdo', 'SDO', '')
    CALJY = ('caljy', 'Noise Cal.', '(Jy)')
    TEMPERATURE = ('temperature', 'Temperature', '(C)')
    PRESSURE = ('pressure', 'Pressure', '(hPa)')
    HUMIDITY = ('humidity', 'Humidity', '(%)')
    WINDSPEED = ('windspeed', 'Wind Speed', '(km/h)')
    WINDDIR = ('winddir', 'Wind Direction', '(deg)')
    RAINGAUGE = ('rainfall', 'Rain', '(mm)')
    SEEMONPHASE = ('seemonphase', 'Seeing Phase', '(deg)')
    SEEMONRMS = ('seemonrms', 'Seeing RMS', '(micron)')

    @property
    def keyword(self) -> str:
        """Name used in commands."""
        return self.value[0]

    @property
    def label(self) -> str:
        """Axis label."""
        return self.value[1]

    @property
    def units(self) -> str:
        """Axis units."""
        return self.value[2]

    @property
    def is_visibility(self) -> bool:
        """Panel shows a per-baseline visibility quantity."""
        return self in (VisPanelType.AMPLITUDE, VisPanelType.PHASE, VisPanelType.DELAY)

    @property
    def is_tsys_family(self) -> bool:
        """Panel shows a per-antenna system calibration quantity."""
        return self in (
            VisPanelType.SYSTEMP, VisPanelType.SYSTEMP_COMPUTED,
            VisPanelType.GTP, VisPanelType.SDO, VisPanelType.CALJY
        )

    @property
    def is_site(self) -> bool:
        """Panel shows a site-wide meteorological quantity."""
        return not (self.is_visibility or self.is_tsys_family)


def product_can_be_x(option: PlotOption) -> bool:
    """Whether a quantity may be used as the x-axis of a VIS plot."""
    return option == PlotOption.TIME


@dataclass
class VisProduct:
    """Which baselines, bands and pols a VIS product selects."""

    antenna_spec: int
    """Bit k set for antenna k."""

    if_spec: int
    """Combination of VIS_PLOT_IF1 and VIS_PLOT_IF2."""

    pol_spec: PlotOption
    """Polarisation option bits."""


_POL_CODES: Final[dict[str, tuple[int, PlotOption]]] = {
    'aa': (VIS_PLOT_IF1, PlotOption.POL_XX),
    'bb': (VIS_PLOT_IF1, PlotOption.POL_YY),
    'ab': (VIS_PLOT_IF1, PlotOption.POL_XY),
    'a': (VIS_PLOT_IF1, PlotOption.POL_XX | PlotOption.POL_XY),
    'b': (VIS_PLOT_IF1, PlotOption.POL_YY | PlotOption.POL_XY),
    'cc': (VIS_PLOT_IF2, PlotOption.POL_XX),
    'dd': (VIS_PLOT_IF2, PlotOption.POL_YY),
    'cd': (VIS_PLOT_IF2, PlotOption.POL_XY),
    'c': (VIS_PLOT_IF2, PlotOption.POL_XX | PlotOption.POL_XY),
    'd': (VIS_PLOT_IF2, PlotOption.POL_YY | PlotOption.POL_XY),
}

_ALL_VIS_POLS: Final[PlotOption] = PlotOption.POL_XX | PlotOption.POL_YY | PlotOption.POL_XY


def interpret_vis_product(product: str) -> VisProduct:
    """Parses a product like '12aa', '3b', 'cc', '14' or '*'.

    Up to two leading antenna digits select the baseline or antenna;
    without digits all antennas are selected. A trailing pol code
    selects band and pols; without it both bands and all pols are used.

    Raises:
        CommandError: If the product cannot be interpreted.
    """
    text = product.strip().lower()
    digits = ''
    while text and text[0].isdigit() and len(digits) < 2:
        digits += text[0]
        text = text[1:]
    if digits:
        antenna_spec = helpers.interpret_array_string(digits)
        if antenna_spec == 0:
            raise CommandError(f'Invalid antennas in product "{product}"')
    else:
        antenna_spec = helpers.full_array_spec()
    if text in ('', '*'):
        return VisProduct(antenna_spec, VIS_PLOT_IF1 | VIS_PLOT_IF2, _ALL_VIS_POLS)
    if text not in _POL_CODES:
        raise CommandError(f'Invalid polarisation in product "{product}"')
    if_spec, pol_spec = _POL_CODES[text]
    return VisProduct(antenna_spec, if_spec, pol_spec)


DEFAULT_VIS_PANELS: Final[list[VisPanelType]] = [
    VisPanelType.AMPLITUDE, VisPanelType.PHASE, VisPanelType.DELAY
]
"""Panels shown when nvis starts."""


@dataclass
class VisControls:
    """Everything the user controls on a VIS plot."""

    panel_type: list[VisPanelType] = field(default_factory=lambda: list(DEFAULT_VIS_PANELS))
    """Quantity shown in each panel, top to bottom."""

    use_panel_limits: list[bool] = field(default_factory=list)
    """The y range of a panel is fixed by the user."""

    panel_limits_min: list[float] = field(default_factory=list)
    """Bottom of the fixed range per panel."""

    panel_limits_max: list[float] = field(default_factory=list)
    """Top of the fixed range per panel."""

    vis_products: list[VisProduct] = field(
        default_factory=lambda: [interpret_vis_product('aa'), interpret_vis_product('bb')]
    )
    """Products to draw."""

    array_spec: int = field(default_factory=helpers.full_array_spec)
    """Bit k set when antenna k is plotted."""

    plot_options: PlotOption = PlotOption.TIME
    """General plot options."""

    visbands: list[str] = field(default_factory=lambda: ['f1', 'f2'])
    """Window labels assigned to the VIS bands."""

    cycletime: int = 10
    """Nominal cycle time in seconds."""

    history_length: float = 20.0
    """Displayed time span in minutes."""

    history_start: float = 20.0
    """How far before the latest data the display starts, in minutes."""

    reference_antenna: int = 0
    """Antenna used as the phase reference, 0 for none."""

    device_id: int = 0
    """Graphics device number used for plotting."""

    def __post_init__(self) -> None:
        self._sync_limits()

    @property
    def num_panels(self) -> int:
        """Number of panels."""
        return len(self.panel_type)

    @property
    def nvisbands(self) -> int:
        """Number of VIS bands."""
        return len(self.visbands)

    @property
    def x_axis_type(self) -> PlotOption:
        """Quantity on the x-axis."""
        return self.plot_options & XAXIS_GROUP

    def set_x_axis(self, option: PlotOption) -> None:
        """Changes the x-axis quantity.

        Raises:
            ValueError: If the quantity cannot be an x-axis.
        """
        if not product_can_be_x(option):
            raise ValueError(f'{option.name.lower()} cannot be the x-axis of a VIS plot')
        self.plot_options = set_exclusive(self.plot_options, XAXIS_GROUP, option)

    def set_panels(self, panel_types: list[VisPanelType]) -> None:
        """Replaces the panels, keeping limits of panel types still shown."""
        old = {
            ptype: (use, lo, hi) for ptype, use, lo, hi in zip(
                self.panel_type, self.use_panel_limits,
                self.panel_limits_min, self.panel_limits_max
            )
        }
        self.panel_type = list(panel_types)
        self.use_panel_limits = [old.get(p, (False, 0.0, 0.0))[0] for p in panel_types]
        self.panel_limits_min = [old.get(p, (False, 0.0, 0.0))[1] for p in panel_types]
        self.panel_limits_max = [old.get(p, (False, 0.0, 0.0))[2] for p in panel_types]

    def change_limits(
        self,
        panel_type: VisPanelType,
        use_limits: bool,
        limit_min: float = 0.0,
        limit_max: float = 0.0
    ) -> bool:
        """Sets or clears the y range of all panels of a type.

        Returns:
            True if a panel of that type is shown.
        """
        if limit_min > limit_max:
            limit_min, limit_max = limit_max, limit_min
        found = False
        for i, ptype in enumerate(self.panel_type):
            if ptype == panel_type:
                found = True
                self.use_panel_limits[i] = use_limits
                self.panel_limits_min[i] = limit_min
                self.panel_limits_max[i] = limit_max
        return found

    def change_visbands(self, visbands: list[str]) -> None:
        """Replaces the window labels assigned to the VIS bands."""
        self.visbands = [v.lower() for v in visbands]

    def _sync_limits(self) -> None:
        n = self.num_panels
        self.use_panel_limits = (self.use_panel_limits + [False] * n)[:n]
        self.panel_limits_min = (self.panel_limits_min + [0.0] * n)[:n]
        self.panel_limits_max = (self.panel_limits_max + [0.0] * n)[:n]
