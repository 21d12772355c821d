"""
Error taxonomy for WiZ light control and discovery
"""


class LightControlError(Exception):
    """Base exception for light control errors"""
    pass


class SendFailure(LightControlError):
    """Datagram could not be handed to the network stack"""

    def __init__(self, ip: str, port: int, cause: Exception):
        self.ip = ip
        self.port = port
        self.cause = cause
        super().__init__(f"Failed to send to {ip}:{port}: {cause}")


class ProbeTimeout(LightControlError):
    """No reply within a probe's deadline (device absent or silent)"""
    pass


class MalformedResponse(LightControlError):
    """Reply datagram is not a usable protocol message"""
    pass


class InvalidProperty(LightControlError, ValueError):
    """Property update payload has no recognized field, or a value that is not a finite number"""
    pass


class UnknownEffect(LightControlError):
    """Requested rhythm effect does not exist"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown effect: {name}")
