"""Module compiling system temperatures for display."""

import numpy as np

from pyspd.dsp.containers import SyscalData


def compile_tsys(
    syscal: SyscalData,
    windows: list[int],
    max_tsys_ifs: int | None = None
) -> SyscalData:
    """Restricts system calibration tables to the displayed windows.

    The returned record has one column per requested window that is
    present in `syscal` (in the requested order, at most
    `max_tsys_ifs` of them). Its `online_tsys` holds the computed
    system temperature wherever that is positive and the online value
    otherwise.

    Args:
        syscal: System calibration of the cycle.
        windows: Window numbers (starting at 1) on display.
        max_tsys_ifs: Maximum number of windows to keep.
    """
    columns = [syscal.if_index(w) for w in windows]
    kept = [(w, c) for w, c in zip(windows, columns) if c >= 0]
    if max_tsys_ifs is not None:
        kept = kept[:max_tsys_ifs]
    idx = [c for _, c in kept]

    def take(table: np.ndarray) -> np.ndarray:
        return table[:, idx, :] if table.size else table

    computed = take(syscal.computed_tsys)
    online = take(syscal.online_tsys)
    chosen = np.where(computed > 0, computed, online) if computed.size else online

    return SyscalData(
        syscal.obs_date,
        syscal.ut_seconds,
        [w for w, _ in kept],
        list(syscal.ant_num),
        syscal.flagging.copy(),
        chosen,
        computed,
        take(syscal.gtp),
        take(syscal.sdo),
        take(syscal.caljy),
    )
