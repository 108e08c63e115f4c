from ddt import ddt, data, unpack
import threading
from unittest import TestCase

from requests.structures import CaseInsensitiveDict
from urllib3 import HTTPHeaderDict

from remember import util


def _repeated() -> HTTPHeaderDict:
    headers = HTTPHeaderDict()
    headers.add('Set-Cookie', 'a=1')
    headers.add('Set-Cookie', 'b=2')
    headers.add('Content-Type', 'text/plain')
    return headers


@ddt
class TestHeaderPairs(TestCase):
    @data(
        (None, ()),
        ({}, ()),
        ({'Accept': 'text/html'}, (('Accept', 'text/html'),)),
        (CaseInsensitiveDict({'Accept': 'text/html'}), (('Accept', 'text/html'),)),
        ({'X-Number': 52}, (('X-Number', '52'),)),
        ({b'X-Bytes': b'caf\xe9'}, (('X-Bytes', 'café'),)),
        (_repeated(), (('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2'), ('Content-Type', 'text/plain'))),
    )
    @unpack
    def test_header_pairs(self, headers, expected):
        self.assertEqual(expected, util.header_pairs(headers), 'Each header value should become one pair')


class TestKeyedLocks(TestCase):
    def test_locks_are_dropped_once_released(self):
        locks = util.KeyedLocks()

        with locks.hold(b'a'):
            self.assertEqual(1, len(locks))
            with locks.hold(b'b'):
                self.assertEqual(2, len(locks))
            self.assertEqual(1, len(locks))

        self.assertEqual(0, len(locks))

    def test_lock_is_released_on_error(self):
        locks = util.KeyedLocks()

        with self.assertRaises(RuntimeError):
            with locks.hold(b'a'):
                raise RuntimeError()

        self.assertEqual(0, len(locks))
        with locks.hold(b'a'):
            pass

    def test_same_key_waits(self):
        locks = util.KeyedLocks()
        entered = threading.Event()

        def hold():
            with locks.hold(b'a'):
                entered.set()

        with locks.hold(b'a'):
            thread = threading.Thread(target=hold)
            thread.start()
            self.assertFalse(entered.wait(0.1), 'A second holder of the same key should wait')

        thread.join(5)
        self.assertTrue(entered.is_set())

    def test_other_key_does_not_wait(self):
        locks = util.KeyedLocks()
        entered = threading.Event()

        def hold():
            with locks.hold(b'b'):
                entered.set()

        with locks.hold(b'a'):
            thread = threading.Thread(target=hold)
            thread.start()
            self.assertTrue(entered.wait(5), 'Holders of different keys should not wait on each other')

        thread.join(5)
