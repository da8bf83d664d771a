class RealtimeError(Exception):
    """Base class for errors raised by the realtime client."""


class RealtimeConnectionError(RealtimeError):
    """The realtime socket could not be opened, or is already open."""


class RealtimeNotConnectedError(RealtimeError):
    """An event was sent while no socket is open."""
