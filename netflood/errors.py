"""Exception types raised by netflood."""


class NetfloodError(Exception):
    """Base class for all netflood errors."""


class ConfigurationError(NetfloodError):
    """Invalid run configuration. Fatal before a run starts."""


class InvalidTimeSpec(ConfigurationError, ValueError):
    """A time window specification could not be parsed."""


class EmptyTaskSet(ConfigurationError):
    """A run was requested with no download tasks."""

    def __init__(self, message: str = "no download tasks"):
        super().__init__(message)


class TaskSourceError(NetfloodError):
    """The task file or listing endpoint could not be read."""


class FetchError(NetfloodError):
    """A single download failed at the transport level."""


class ReportDeliveryError(NetfloodError):
    """A stats report could not be delivered."""
