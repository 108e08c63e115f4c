from contextlib import contextmanager
import threading
from typing import Any, Dict, Hashable, Iterator, List

from .model import Headers


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        # Header bytes are latin-1 on the wire.
        return value.decode('latin-1')
    return str(value)


def header_pairs(headers: Any) -> Headers:
    """
    Flatten a header container into (name, value) pairs.

    Containers that keep repeated fields apart, like urllib3's
    `HTTPHeaderDict`, yield one pair per value. Plain mappings yield one pair
    per key.
    """
    if headers is None:
        return ()
    getlist = getattr(headers, 'getlist', None)
    if getlist is not None:
        return tuple((_text(name), _text(value))
                     for name in headers
                     for value in getlist(name))
    return tuple((_text(name), _text(value)) for name, value in headers.items())


class KeyedLocks:
    """
    Hands out one lock per key, keeping a lock only while somebody holds or
    waits on it.
    """

    def __init__(self) -> None:
        self.__guard = threading.Lock()
        self.__locks: Dict[Hashable, List[Any]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self.__guard:
            entry = self.__locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self.__guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self.__locks[key]

    def __len__(self) -> int:
        with self.__guard:
            return len(self.__locks)
