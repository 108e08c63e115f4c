"""
Defines the records kept in the response memory.

These types are plain immutable values. Converting them to and from
`requests` objects happens in the adapter, and converting them to and from
bytes happens in the codec.
"""

from dataclasses import dataclass
from typing import Tuple


Headers = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class RememberedRequest:
    """
    The request a remembered response answered.

    The body is not kept since it never takes part in the lookup.
    """

    method: str
    """
    The HTTP method of the request. E.g., "GET".
    """

    url: str
    """
    The full URL the request was sent to.
    """

    headers: Headers
    """
    The headers sent with the request, as (name, value) pairs.
    """


@dataclass(frozen=True)
class RememberedResponse:
    """
    A response exactly as it came back from the upstream transport.

    The body is the complete decoded payload. Content and transfer encodings
    were already undone by the time it was read, so those headers only
    describe how the response originally travelled.
    """

    status: int
    """
    The status code of the response. E.g., 200 or 404.
    """

    reason: str
    """
    The status text sent along with the status code. E.g., "OK".
    """

    protocol: str
    """
    The protocol name and version. E.g., "HTTP/1.1".
    """

    protocol_major: int

    protocol_minor: int

    headers: Headers
    """
    All the response headers, as (name, value) pairs. A name may repeat.
    """

    trailers: Headers
    """
    Trailer headers sent after the body, as (name, value) pairs.
    """

    transfer_encoding: Tuple[str, ...]
    """
    Transfer codings that were applied, outermost last. E.g., ("chunked",).
    """

    body: bytes
    """
    The fully drained response payload.
    """

    request: RememberedRequest

    @property
    def version(self) -> int:
        """
        The protocol version in the integer form urllib3 uses. E.g., 11.
        """
        return self.protocol_major * 10 + self.protocol_minor
