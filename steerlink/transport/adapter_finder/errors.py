from ...errors import NoDeviceError


class AdapterNotFoundError(NoDeviceError):
    """No listed serial port looks like an adapter."""
    pass


class MultipleAdaptersError(NoDeviceError):
    """Auto-detection is ambiguous.

    Attributes:
        adapters: The candidate AdapterInfo entries
    """

    def __init__(self, message, adapters):
        super().__init__(message)
        self.adapters = list(adapters)
