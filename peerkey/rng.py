# Copyright (C) 2026 The peerkey developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

"""Random source service.

Every consumer of randomness in peerkey goes through a RandomSource.
A process-wide default exists, but functions that need randomness
accept an explicit ``rng=`` argument so tests can inject a
deterministic stream.
"""

import os
import time
import hmac
import hashlib
import threading
from abc import ABC, abstractmethod
from typing import Optional

from .util import CryptoFailure
from .logging import get_logger, Logger


_logger = get_logger(__name__)

# bound on rejection sampling; hitting it means the source is broken
MAX_SAMPLING_ATTEMPTS = 128


def hmac_oneshot(key: bytes, msg: bytes, digest) -> bytes:
    return hmac.digest(key, msg, digest)


def _expand(key: bytes, counter: int, n: int) -> bytes:
    out = b''
    block = 0
    while len(out) < n:
        msg = counter.to_bytes(8, 'big') + block.to_bytes(4, 'big')
        out += hmac_oneshot(key, msg, hashlib.sha256)
        block += 1
    return out[:n]


def xor_bytes(a: bytes, b: bytes) -> bytes:
    size = min(len(a), len(b))
    return ((int.from_bytes(a[:size], "big") ^ int.from_bytes(b[:size], "big"))
            .to_bytes(size, "big"))


def perfmon_entropy() -> bytes:
    """Cheap, fast-changing process and timer state.

    Not a source of randomness on its own; it is only ever mixed into
    a pool that is already seeded from the OS.
    """
    t = os.times()
    parts = [
        time.perf_counter_ns(),
        time.time_ns(),
        time.monotonic_ns(),
        time.process_time_ns(),
        os.getpid(),
        threading.get_ident(),
        int(t.user * 1e6),
        int(t.system * 1e6),
    ]
    return b''.join(int(x).to_bytes(16, 'big', signed=True) for x in parts)


class RandomSource(ABC):

    @abstractmethod
    def read(self, n: int) -> bytes:
        """Return n random bytes. Raises CryptoFailure if no
        randomness can be produced.
        """
        pass

    @abstractmethod
    def reseed(self, entropy: bytes) -> None:
        pass

    def randrange(self, bound: int) -> int:
        """Return a random integer k such that 1 <= k < bound, uniformly
        distributed across that range.
        """
        if bound <= 1:
            raise ValueError(f"bound must be > 1, got {bound}")
        nbits = bound.bit_length()
        nbytes = (nbits + 7) // 8
        excess_bits = 8 * nbytes - nbits
        for _ in range(MAX_SAMPLING_ATTEMPTS):
            # keep exactly nbits, so each sample lands below bound with p > 1/2
            k = int.from_bytes(self.read(nbytes), 'big') >> excess_bits
            if 1 <= k < bound:
                return k
        raise CryptoFailure(f"random source failed to produce a value below bound "
                            f"after {MAX_SAMPLING_ATTEMPTS} attempts")


class SystemRandomSource(RandomSource, Logger):
    """OS randomness, whitened with an HMAC stream keyed by a pool
    that callers can stir with extra entropy.
    """

    LOGGING_SHORTCUT = 'r'

    def __init__(self):
        Logger.__init__(self)
        self.lock = threading.Lock()
        self._pool = hashlib.sha256(self._urandom(32) + perfmon_entropy()).digest()
        self._counter = 0
        self._last_perfmon = None  # type: Optional[float]

    @staticmethod
    def _urandom(n: int) -> bytes:
        try:
            return os.urandom(n)
        except (OSError, NotImplementedError) as e:
            raise CryptoFailure(f"OS random number generator failed: {e!r}") from e

    def read(self, n: int) -> bytes:
        if n < 0:
            raise ValueError(f"cannot read a negative number of bytes: {n}")
        osrand = self._urandom(n)
        with self.lock:
            self._counter += 1
            stream = _expand(self._pool, self._counter, n)
        return xor_bytes(osrand, stream)

    def reseed(self, entropy: bytes) -> None:
        with self.lock:
            self._pool = hashlib.sha256(self._pool + bytes(entropy)).digest()
        self.logger.debug(f"random pool reseeded with {len(entropy)} bytes")

    def add_perfmon_seed(self, *, min_interval: float = 600) -> bool:
        """Mix timer and process counters into the pool, at most once
        per min_interval seconds. Returns whether a reseed happened.
        """
        now = time.monotonic()
        with self.lock:
            if self._last_perfmon is not None and now - self._last_perfmon < min_interval:
                return False
            self._last_perfmon = now
        self.reseed(perfmon_entropy())
        return True


class DeterministicRandomSource(RandomSource):
    """Reproducible HMAC-SHA256 counter stream. For tests only."""

    def __init__(self, seed: bytes):
        self.lock = threading.Lock()
        self._key = hashlib.sha256(bytes(seed)).digest()
        self._counter = 0

    def read(self, n: int) -> bytes:
        if n < 0:
            raise ValueError(f"cannot read a negative number of bytes: {n}")
        with self.lock:
            self._counter += 1
            return _expand(self._key, self._counter, n)

    def reseed(self, entropy: bytes) -> None:
        with self.lock:
            self._key = hashlib.sha256(self._key + bytes(entropy)).digest()


_default_source = None  # type: Optional[RandomSource]
_default_source_lock = threading.Lock()


def get_random_source() -> RandomSource:
    global _default_source
    with _default_source_lock:
        if _default_source is None:
            _default_source = SystemRandomSource()
        return _default_source


def set_random_source(source: Optional[RandomSource]) -> None:
    """Replace the process-wide random source. None restores the
    OS-backed default on next use.
    """
    global _default_source
    if source is not None and not isinstance(source, RandomSource):
        raise TypeError(f"expected RandomSource, got {type(source)}")
    with _default_source_lock:
        _default_source = source
    _logger.info(f"process random source set to {type(source).__name__ if source else 'default'}")
