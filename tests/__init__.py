import unittest
import threading
import tempfile
import shutil

import peerkey
import peerkey.logging
from peerkey import rng
from peerkey.logging import Logger


# Set this locally to make the test suite run faster.
# If set, randomized property tests run far fewer iterations.
FAST_TESTS = False


peerkey.logging._configure_stderr_logging(verbosity="*")


class PeerkeyTestCase(unittest.TestCase, Logger):
    """Base class for our unit tests."""

    # maxDiff = None  # for debugging

    # some unit tests are modifying globals... so we run sequentially:
    _test_lock = threading.Lock()

    def __init__(self, *args, **kwargs):
        Logger.__init__(self)
        unittest.TestCase.__init__(self, *args, **kwargs)

    def setUp(self):
        have_lock = self._test_lock.acquire(timeout=0.1)
        if not have_lock:
            # This can happen when trying to run the tests in parallel,
            # or if a prior test raised during `setUp` and never released the lock.
            raise Exception("timed out waiting for test_lock")
        super().setUp()
        self.peerkey_path = tempfile.mkdtemp(prefix="peerkey-unittest-base-")

    def tearDown(self):
        shutil.rmtree(self.peerkey_path)
        rng.set_random_source(None)
        super().tearDown()
        self._test_lock.release()
