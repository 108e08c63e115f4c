"""
Errors raised by the response memory.

Every error derives from `requests.exceptions.RequestException`, so code that
already handles transport failures handles these the same way. Failures of the
upstream transport itself are never wrapped; they propagate unchanged.
"""

from requests.exceptions import RequestException


class RememberError(RequestException):
    """
    Base class for every failure originating in the response memory.
    """


class StoreError(RememberError):
    """
    The durable store failed.
    """


class StoreOpenError(StoreError):
    """
    The store could not be opened or initialized.
    """


class StoreReadError(StoreError):
    """
    A read transaction failed. A missing key is not an error.
    """


class StoreWriteError(StoreError):
    """
    A write transaction failed and was rolled back.
    """


class KeyDerivationError(RememberError):
    """
    The request URL could not be turned into a cache key.
    """


class DecodeError(RememberError):
    """
    Stored bytes do not form a valid remembered response.
    """
