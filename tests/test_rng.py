import threading
from unittest import mock

from peerkey import rng
from peerkey.rng import (SystemRandomSource, DeterministicRandomSource, RandomSource,
                         get_random_source, set_random_source, perfmon_entropy, xor_bytes)
from peerkey.util import CryptoFailure

from . import PeerkeyTestCase


class CountingRandomSource(RandomSource):
    """Yields the big-endian encoding of 0, 1, 2, ..."""

    def __init__(self):
        self.i = 0

    def read(self, n):
        out = self.i.to_bytes(n, 'big')
        self.i += 1
        return out

    def reseed(self, entropy):
        pass


class ConstantRandomSource(RandomSource):
    """Repeats one byte forever."""

    def __init__(self, byte: bytes):
        self.byte = byte

    def read(self, n):
        return self.byte * n

    def reseed(self, entropy):
        pass


class TestRandomSource(PeerkeyTestCase):

    def test_system_read_lengths(self):
        source = SystemRandomSource()
        for n in (0, 1, 31, 32, 33, 100):
            self.assertEqual(n, len(source.read(n)))
        with self.assertRaises(ValueError):
            source.read(-1)

    def test_system_reads_differ(self):
        source = SystemRandomSource()
        self.assertNotEqual(source.read(32), source.read(32))

    def test_system_urandom_failure(self):
        with mock.patch('os.urandom', side_effect=OSError("no entropy")):
            with self.assertRaises(CryptoFailure):
                SystemRandomSource()
        source = SystemRandomSource()
        with mock.patch('os.urandom', side_effect=NotImplementedError()):
            with self.assertRaises(CryptoFailure):
                source.read(32)

    def test_system_reseed_changes_stream(self):
        source = SystemRandomSource()
        pool = source._pool
        source.reseed(b'some entropy')
        self.assertNotEqual(pool, source._pool)
        source.reseed(b'')
        self.assertEqual(32, len(source.read(32)))

    def test_system_stream_is_mixed_with_pool(self):
        source = SystemRandomSource()
        with mock.patch('os.urandom', side_effect=lambda n: bytes(n)):
            a = source.read(32)
            b = source.read(32)
        self.assertNotEqual(bytes(32), a)
        self.assertNotEqual(a, b)

    def test_perfmon_seed_is_throttled(self):
        source = SystemRandomSource()
        self.assertTrue(source.add_perfmon_seed(min_interval=600))
        pool = source._pool
        self.assertFalse(source.add_perfmon_seed(min_interval=600))
        self.assertEqual(pool, source._pool)
        self.assertTrue(source.add_perfmon_seed(min_interval=0))
        self.assertNotEqual(pool, source._pool)

    def test_perfmon_entropy(self):
        self.assertEqual(128, len(perfmon_entropy()))

    def test_system_concurrent_reads(self):
        source = SystemRandomSource()
        results = []
        lock = threading.Lock()

        def worker():
            out = [source.read(32) for _ in range(50)]
            with lock:
                results.extend(out)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(400, len(results))
        self.assertEqual(400, len(set(results)))

    def test_deterministic_is_reproducible(self):
        a = DeterministicRandomSource(b'seed')
        b = DeterministicRandomSource(b'seed')
        c = DeterministicRandomSource(b'other')
        first = a.read(40)
        self.assertEqual(first, b.read(40))
        self.assertNotEqual(first, c.read(40))
        self.assertNotEqual(first, a.read(40))
        a.reseed(b'x')
        self.assertNotEqual(a.read(40), b.read(40))

    def test_randrange_bounds(self):
        source = DeterministicRandomSource(b'randrange')
        for bound in (2, 3, 255, 256, 257, 2**255 + 1):
            for _ in range(20):
                k = source.randrange(bound)
                self.assertTrue(1 <= k < bound, (k, bound))
        with self.assertRaises(ValueError):
            source.randrange(1)
        with self.assertRaises(ValueError):
            source.randrange(0)

    def test_randrange_rejects_out_of_range_samples(self):
        source = CountingRandomSource()
        # 200 needs all 8 bits of a byte: 0 is rejected, 1 accepted
        self.assertEqual(1, source.randrange(200))
        self.assertEqual(2, source.read(1)[0])

    def test_randrange_drops_excess_bits(self):
        source = CountingRandomSource()
        # 10 needs 4 bits, so bytes 0..15 all map to 0 and 16 is the first 1
        self.assertEqual(1, source.randrange(10))
        self.assertEqual(17, source.read(1)[0])
        source = ConstantRandomSource(b"\x40")
        self.assertEqual(4, source.randrange(10))
        self.assertEqual(1, source.randrange(3))

    def test_randrange_small_bounds_on_system_source(self):
        source = SystemRandomSource()
        for bound in (2, 3, 257, 65537):
            with self.subTest(bound=bound):
                seen = {source.randrange(bound) for _ in range(200)}
                self.assertTrue(all(1 <= k < bound for k in seen))
        self.assertEqual({1}, {source.randrange(2) for _ in range(50)})
        self.assertEqual({1, 2}, {source.randrange(3) for _ in range(200)})

    def test_randrange_gives_up_on_broken_source(self):
        # the top sample 0b1111 is always >= 10
        with self.assertRaises(CryptoFailure):
            ConstantRandomSource(b"\xff").randrange(10)

    def test_xor_bytes(self):
        self.assertEqual(b'\x00\x00', xor_bytes(b'\xab\xcd', b'\xab\xcd'))
        self.assertEqual(b'\xff', xor_bytes(b'\x0f', b'\xf0\x00'))


class TestProcessRandomSource(PeerkeyTestCase):

    def test_default_is_system(self):
        source = get_random_source()
        self.assertIsInstance(source, SystemRandomSource)
        self.assertIs(source, get_random_source())

    def test_set_and_restore(self):
        default = get_random_source()
        det = DeterministicRandomSource(b'injected')
        set_random_source(det)
        self.assertIs(det, get_random_source())
        set_random_source(None)
        restored = get_random_source()
        self.assertIsInstance(restored, SystemRandomSource)
        self.assertIsNot(default, restored)

    def test_set_rejects_non_source(self):
        with self.assertRaises(TypeError):
            set_random_source(b'not a source')
        self.assertIsInstance(rng.get_random_source(), RandomSource)
