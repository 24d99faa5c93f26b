"""Exceptions raised by the IP locator."""


class LocatorError(Exception):
    pass


class ValidationError(LocatorError):
    """The batch input held no usable IP addresses."""


class ProviderError(LocatorError):
    """A single upstream geolocation call failed."""

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        self.message = message or f"Failed to fetch from {provider}"
        super().__init__(self.message)


class AggregateProviderError(ProviderError):
    """Every provider in the chain failed for one IP."""

    def __init__(self, failures=None):
        self.failures = list(failures or [])
        super().__init__("auto", "All API services failed. Please try again later.")


class CacheError(LocatorError):
    """The cache store could not be read or written."""


class BatchInProgressError(LocatorError):
    """A batch was started while another one is still running."""
