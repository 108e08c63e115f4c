"""
Turns remembered responses into bytes and back, and requests into keys.

A record is laid out as:

    magic (4 bytes) | version (1 byte) | metadata length (4 bytes, big endian)
    | metadata (UTF-8 JSON) | body

The metadata holds every field except the body, which follows verbatim. The
record carries everything needed to decode it, so no outside schema is needed.
"""

import json
import struct
from typing import Any, Mapping

from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from .errors import DecodeError, KeyDerivationError
from .model import Headers, RememberedRequest, RememberedResponse


MAGIC = b'RMBR'
RECORD_VERSION = 1

_HEADER = struct.Struct('>4sBI')


def cache_key(url: Any) -> bytes:
    """
    Derive the store key for a request URL.

    The URL is normalized by urllib3 and serialized back, so two spellings
    urllib3 considers the same address produce the same key. The fragment is
    dropped since it is never sent to the server.

    @throws KeyDerivationError
      If the URL cannot be parsed or lacks a scheme or host.
    """
    if isinstance(url, bytes):
        try:
            url = url.decode('utf-8')
        except UnicodeDecodeError as e:
            raise KeyDerivationError('URL is not valid UTF-8: {!r}'.format(url)) from e
    if not isinstance(url, str):
        raise KeyDerivationError('URL must be a string, not {!r}'.format(url))

    try:
        parsed = parse_url(url)
    except LocationParseError as e:
        raise KeyDerivationError('Unable to parse URL: {!r}'.format(url)) from e
    if not parsed.scheme or not parsed.host:
        raise KeyDerivationError('URL needs a scheme and a host: {!r}'.format(url))

    return parsed._replace(fragment=None).url.encode('utf-8')


def encode(response: RememberedResponse) -> bytes:
    metadata = json.dumps({
        'status': response.status,
        'reason': response.reason,
        'protocol': [response.protocol, response.protocol_major, response.protocol_minor],
        'headers': [list(pair) for pair in response.headers],
        'trailers': [list(pair) for pair in response.trailers],
        'transfer_encoding': list(response.transfer_encoding),
        'request': {
            'method': response.request.method,
            'url': response.request.url,
            'headers': [list(pair) for pair in response.request.headers],
        },
    }, separators=(',', ':')).encode('utf-8')
    return _HEADER.pack(MAGIC, RECORD_VERSION, len(metadata)) + metadata + response.body


def decode(data: bytes) -> RememberedResponse:
    """
    Rebuild a remembered response from a record made by `encode`.

    @throws DecodeError
      If the bytes are truncated, come from an unknown record version, or do
      not describe a response.
    """
    data = bytes(data)
    if len(data) < _HEADER.size:
        raise DecodeError('Record is {} bytes, shorter than its header'.format(len(data)))

    magic, version, length = _HEADER.unpack_from(data)
    if magic != MAGIC:
        raise DecodeError('Record does not start with {!r}'.format(MAGIC))
    if version != RECORD_VERSION:
        raise DecodeError('Unsupported record version {}'.format(version))

    start = _HEADER.size
    end = start + length
    if end > len(data):
        raise DecodeError('Record metadata is truncated')

    try:
        metadata = json.loads(data[start:end].decode('utf-8'))
        protocol, major, minor = _field(metadata, 'protocol', list)
        request = _field(metadata, 'request', dict)
        return RememberedResponse(
            status=_field(metadata, 'status', int),
            reason=_field(metadata, 'reason', str),
            protocol=_check('protocol', protocol, str),
            protocol_major=_check('protocol', major, int),
            protocol_minor=_check('protocol', minor, int),
            headers=_pairs(metadata, 'headers'),
            trailers=_pairs(metadata, 'trailers'),
            transfer_encoding=tuple(_check('transfer_encoding', token, str)
                                    for token in _field(metadata, 'transfer_encoding', list)),
            body=data[end:],
            request=RememberedRequest(
                method=_field(request, 'method', str),
                url=_field(request, 'url', str),
                headers=_pairs(request, 'headers'),
            ),
        )
    except (ValueError, TypeError) as e:
        # Covers bad UTF-8, bad JSON and wrongly shaped fields.
        raise DecodeError('Record metadata is malformed: {}'.format(e)) from e


def _check(name: str, value: Any, kind: type) -> Any:
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodeError('Field {!r} should be {}, got {!r}'.format(name, kind.__name__, value))
    return value


def _field(metadata: Mapping[str, Any], name: str, kind: type) -> Any:
    if not isinstance(metadata, dict) or name not in metadata:
        raise DecodeError('Record is missing field {!r}'.format(name))
    return _check(name, metadata[name], kind)


def _pairs(metadata: Mapping[str, Any], name: str) -> Headers:
    result = []
    for pair in _field(metadata, name, list):
        if not isinstance(pair, list) or len(pair) != 2:
            raise DecodeError('Field {!r} should hold [name, value] pairs'.format(name))
        result.append((_check(name, pair[0], str), _check(name, pair[1], str)))
    return tuple(result)
