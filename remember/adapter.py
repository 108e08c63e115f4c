from http.client import HTTPMessage
from io import BytesIO
import logging
from pathlib import Path
from typing import Optional, Union

import requests
from requests.adapters import BaseAdapter, HTTPAdapter
from requests.cookies import extract_cookies_to_jar
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers
from urllib3 import HTTPHeaderDict, HTTPResponse

from . import codec
from .errors import DecodeError
from .model import Headers, RememberedRequest, RememberedResponse
from .store import SqliteStore, Store
from .util import KeyedLocks, header_pairs


logger = logging.getLogger(__name__)

DEFAULT_PATH = Path('memory.db')
DEFAULT_VERSION = 11

# The replayed body is already decoded and its length is known.
_FRAMING_HEADERS = {'content-encoding', 'transfer-encoding', 'content-length'}


class RememberingAdapter(BaseAdapter):
    """
    A transport adapter that remembers every response it fetches.

    Requests are looked up in `store` by URL. A remembered response is returned
    without touching the network; anything else is sent through `upstream` and
    remembered before being returned. Nothing ever expires.
    """

    def __init__(self, store: Store, upstream: Optional[BaseAdapter] = None,
                 close_store: bool = False, dedupe: bool = False) -> None:
        """
        @param store
          Where responses are remembered. It is shared, not owned, unless
          `close_store` is set.
        @param upstream
          The adapter that performs real requests. Defaults to a new
          `HTTPAdapter`.
        @param close_store
          Whether `close()` should also close `store`.
        @param dedupe
          Whether concurrent misses for the same URL should wait on each other
          so that only one of them reaches `upstream`.
        """
        super().__init__()
        self.store = store
        self.upstream = upstream if upstream is not None else HTTPAdapter()
        self.close_store = close_store
        self.__locks = KeyedLocks() if dedupe else None

    def send(self, request: requests.PreparedRequest, **kw) -> requests.Response:
        """
        Send a request, answering from memory when possible.

        Keyword arguments such as `timeout` are passed on to the upstream
        adapter untouched. Upstream failures propagate as-is and are never
        remembered.
        """
        key = codec.cache_key(request.url)
        response = self._recall(request, key)
        if response is not None:
            return response

        if self.__locks is None:
            return self._fetch(request, key, **kw)

        with self.__locks.hold(key):
            # Another caller may have remembered it while we waited.
            response = self._recall(request, key)
            if response is not None:
                return response
            return self._fetch(request, key, **kw)

    def close(self) -> None:
        self.upstream.close()
        if self.close_store:
            self.store.close()

    def _recall(self, request: requests.PreparedRequest, key: bytes) -> Optional[requests.Response]:
        logger.info('Looking up {} in memory.'.format(request.url))
        data = self.store.get(key)
        if data is None:
            return None

        try:
            remembered = codec.decode(data)
        except DecodeError as e:
            logger.warning('The remembered response for {} is corrupt: {}'.format(request.url, e))
            raise

        logger.info('Fetched from memory.')
        return to_requests_response(remembered, request, connection=self)

    def _fetch(self, request: requests.PreparedRequest, key: bytes, **kw) -> requests.Response:
        logger.info('Using upstream transport for {}.'.format(request.url))
        response = self.upstream.send(request, **kw)

        remembered = from_requests_response(response, request)
        # The body has been drained, so this only hands the connection back.
        response.close()
        # The replayed body keeps the headers requests reads cookies from.
        response.raw = replayable_raw(remembered)
        response.from_cache = False

        logger.info('Storing response.')
        self.store.put(key, codec.encode(remembered))
        return response


def from_requests_response(response: requests.Response, request: requests.PreparedRequest) -> RememberedResponse:
    """
    Capture a response, reading its entire body.

    The protocol version is the one urllib3 observed. Adapters whose raw
    response carries no version are recorded as HTTP/1.1, the version
    `http.client` speaks.
    """
    body = response.content or b''
    raw = response.raw

    headers = header_pairs(getattr(raw, 'headers', None) or response.headers)
    version = getattr(raw, 'version', None)
    if not isinstance(version, int) or version <= 0:
        logger.info('No protocol version on the upstream response. Recording HTTP/1.1.')
        version = DEFAULT_VERSION
    major, minor = divmod(version, 10)
    protocol = 'HTTP/{}.{}'.format(major, minor)

    return RememberedResponse(
        status=response.status_code,
        reason=response.reason or '',
        protocol=protocol,
        protocol_major=major,
        protocol_minor=minor,
        headers=headers,
        trailers=header_pairs(getattr(raw, 'trailers', None)),
        transfer_encoding=tuple(token.strip()
                                for name, value in headers if name.lower() == 'transfer-encoding'
                                for token in value.split(',') if token.strip()),
        body=body,
        request=RememberedRequest(
            method=request.method or 'GET',
            url=request.url,
            headers=header_pairs(request.headers),
        ),
    )


class _ReplayedMessage:
    """
    Stands in for the `http.client` response behind a replayed body.

    requests reads `Set-Cookie` from `raw._original_response.msg`, both for the
    session's cookie jar and while following redirects.
    """

    def __init__(self, headers: Headers) -> None:
        self.msg = HTTPMessage()
        for name, value in headers:
            self.msg[name] = value

    def isclosed(self) -> bool:
        return True

    def close(self) -> None:
        pass


def replayable_raw(remembered: RememberedResponse) -> HTTPResponse:
    """
    Build a fresh urllib3 response that replays a remembered body.

    Content and transfer encodings are left out since the body is already
    decoded, and the content length always matches the stored body.
    """
    headers = HTTPHeaderDict()
    for name, value in remembered.headers:
        if name.lower() not in _FRAMING_HEADERS:
            headers.add(name, value)
    headers['Content-Length'] = str(len(remembered.body))

    return HTTPResponse(body=BytesIO(remembered.body),
                        headers=headers,
                        status=remembered.status,
                        version=remembered.version,
                        reason=remembered.reason,
                        preload_content=False,
                        decode_content=False,
                        original_response=_ReplayedMessage(remembered.headers),
                        request_method=remembered.request.method,
                        request_url=remembered.request.url)


def to_requests_response(remembered: RememberedResponse,
                         request: Optional[requests.PreparedRequest] = None,
                         connection: Optional[BaseAdapter] = None) -> requests.Response:
    """
    Rebuild a `requests.Response` that reads as if it were freshly fetched.

    @param request
      The request being answered. When absent, the remembered request is used.
    """
    if request is None:
        request = requests.Request(method=remembered.request.method,
                                   url=remembered.request.url,
                                   headers=dict(remembered.request.headers)).prepare()

    result = requests.Response()
    result.status_code = remembered.status
    result.reason = remembered.reason
    result.headers = CaseInsensitiveDict(_header_dict(remembered.headers))
    result.encoding = get_encoding_from_headers(result.headers)
    result.raw = replayable_raw(remembered)
    result.url = request.url
    result.request = request
    result.connection = connection
    result.from_cache = True
    extract_cookies_to_jar(result.cookies, request, result.raw)
    return result


def _header_dict(headers: Headers) -> HTTPHeaderDict:
    result = HTTPHeaderDict()
    for name, value in headers:
        result.add(name, value)
    return result


def add_memory(session: requests.Session, store: Optional[Store] = None,
               path: Union[str, Path] = DEFAULT_PATH, dedupe: bool = False) -> requests.Session:
    """
    Give a session a memory by wrapping the adapters it has mounted for HTTP
    and HTTPS.

    @param store
      The store to share between the wrapped adapters. When absent, one is
      opened at `path` and closed along with the session.
    @return
      The same session.
    @throws StoreOpenError
      If no store is given and the one at `path` cannot be opened.
    """
    close_store = store is None
    if store is None:
        store = SqliteStore(path)

    for prefix in ('https://', 'http://'):
        upstream = session.get_adapter(prefix)
        session.mount(prefix, RememberingAdapter(store, upstream, close_store=close_store, dedupe=dedupe))
    return session


def create(path: Union[str, Path] = DEFAULT_PATH, upstream: Optional[BaseAdapter] = None) -> RememberingAdapter:
    return RememberingAdapter(SqliteStore(path), upstream, close_store=True)
