"""Custom exceptions for the danspad sensor pad library."""


class PadError(Exception):
    """Base exception for all danspad library errors."""

    pass


class SerialIOError(PadError):
    """Raised when serial communication fails (port closed, open failed, etc)."""

    pass


class LinkFault(SerialIOError):
    """Raised when the transport reports a fault; the current link is down."""

    pass


class DeviceOpenError(SerialIOError):
    """Raised when no pad can be opened or the pad does not report any sensors."""

    pass


class MalformedReport(PadError):
    """Raised when a report line exceeds the line buffer without a terminator."""

    pass


class ParseFailure(PadError):
    """Raised when a report has an unknown tag or an out-of-range number."""

    pass


class IndexOutOfRange(PadError, IndexError):
    """Raised when a sensor index is outside [0, sensor_count)."""

    pass


class ProfileError(PadError):
    """Base class for profile load/save failures."""

    pass


class SignatureMismatch(ProfileError):
    """Raised when a profile does not start with the expected signature."""

    pass


class Truncated(ProfileError):
    """Raised when a profile ends before its declared contents."""

    pass


class SensorCountMismatch(ProfileError):
    """Raised when a profile was saved for a pad with a different sensor count."""

    pass


class ProfileIOError(ProfileError):
    """Raised when a profile file cannot be read or written."""

    pass
