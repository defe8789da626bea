"""Error taxonomy shared by the API layer, orchestrators and lifecycle manager."""


class BridgeError(Exception):
    """Base class for errors with a known HTTP mapping."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestShape(BridgeError):
    """Malformed request body (messages/input of the wrong type)."""

    status_code = 400


class NoInputProvided(BridgeError):
    """Nothing usable could be extracted from the request."""

    status_code = 400

    def __init__(
        self,
        message: str = "No input provided. Supply `input` or `messages` with at least one entry.",
    ) -> None:
        super().__init__(message)


class UnsupportedFeature(BridgeError):
    """Request asks for something this server deliberately does not do."""

    status_code = 400


class ModelUnavailable(BridgeError):
    """No selector produced a usable upstream model."""


class UpstreamRequestFailed(BridgeError):
    """The upstream send or probe returned nothing or raised."""


class StreamingInterrupted(BridgeError):
    """Failure after SSE headers were committed; reported in-band only."""


class PortInUse(Exception):
    """The configured port is held by another listener."""

    def __init__(self, port: int) -> None:
        super().__init__(f"Port {port} is already in use")
        self.port = port
