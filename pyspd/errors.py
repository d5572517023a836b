"""Exceptions raised by the PySPD clients."""


class PyspdError(Exception):
    """Base class of all PySPD errors."""


class CommandError(PyspdError):
    """A command line could not be parsed."""


class OutOfRangeError(PyspdError):
    """A value lies outside the permitted or known range."""


class DateUnknownError(PyspdError):
    """A time was given without a date before any base date is known."""


class NetworkError(PyspdError):
    """Connecting to, sending to or receiving from the server failed."""


class CodecError(PyspdError):
    """A wire message or data file has unexpected content."""


class DeviceError(PyspdError):
    """A graphics device could not be opened."""
