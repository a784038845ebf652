"""Exceptions raised by the Tibber Pulse driver."""


class PulseError(Exception):
    """Base exception for all driver errors."""

    pass


class TransportError(PulseError):
    """Raised when the status request to the bridge cannot be completed."""

    pass


class PulseRequestError(TransportError):
    """Raised when the bridge answers with a non-success HTTP status."""

    def __init__(self, url: str, status_code: int):
        super().__init__(f"http request to {url} failed with status {status_code}")
        self.url = url
        self.status_code = status_code


class BodyMaterializationError(TransportError):
    """Raised when the response body exceeds its size or time budget."""

    pass


class DecodeError(PulseError):
    """Raised when an SML frame is truncated, corrupt or structurally unsupported."""

    pass
