"""Graphics device listing script and file device mapping.

This module maps dump file names onto graphics device specifications
and provides a simple command-line interface for listing the
supported device types. It supports the following usage patterns:

- No arguments:
    Lists all supported device types.

- String argument:
    Filters the list by type name or description (case-insensitive).

Typical usage example:

    pyspd_devices           # Show all device types
    pyspd_devices png       # Show device types containing 'png'
"""

import os
import sys

from pyspd.device.mpl_device import FILE_TYPES, SCREEN_TYPES


DUMP_DEVICE_TYPES = {
    'png': 'png',
    'ps': 'cps',
}
"""File extension of a dump mapped to the device type used to write it."""

DEVICE_DESCRIPTIONS = {
    'xs': 'Interactive screen window (persistent)',
    'xw': 'Interactive screen window',
    'xserve': 'Interactive screen window (persistent)',
    'png': 'Portable Network Graphics file',
    'tpng': 'Portable Network Graphics file',
    'ps': 'PostScript file (monochrome)',
    'cps': 'PostScript file (colour)',
    'vps': 'PostScript file (monochrome, portrait)',
    'vcps': 'PostScript file (colour, portrait)',
}
"""Human readable description of each supported device type."""


def device_for_filename(filename: str, default_type: str = 'png') -> tuple[str, str]:
    """Works out the device to dump into a file.

    The file type follows the extension when it is a known dump type;
    otherwise the default type's extension is appended.

    Args:
        filename: Requested file name, possibly without extension.
        default_type: Dump type used when the extension is not known.

    Returns:
        tuple[device_spec, resolved_filename]
    """
    extension = os.path.splitext(filename)[1].lower().lstrip('.')
    if extension not in DUMP_DEVICE_TYPES:
        if default_type not in DUMP_DEVICE_TYPES:
            default_type = 'png'
        extension = default_type
        filename = f'{filename}.{extension}'
    return f'{filename}/{DUMP_DEVICE_TYPES[extension]}', filename


def print_info(search_param: str | None = None):
    """Print info about supported device types."""
    if search_param is None:
        search_param = ''
    for dev_type in (*SCREEN_TYPES, *FILE_TYPES):
        description = DEVICE_DESCRIPTIONS.get(dev_type, '')
        if (search_param.lower() in dev_type
                or search_param.lower() in description.lower()):
            print(f'/{dev_type:<8} {description}')


def run_cli():
    """Run printing info with console arguments."""
    if len(sys.argv) > 1:
        print_info(sys.argv[1])
    else:
        print_info()


if __name__ == '__main__':
    run_cli()
