import hashlib

from peerkey.ecc import KeyPair
from peerkey.rng import DeterministicRandomSource
from peerkey.simple_config import SimpleConfig
from peerkey.verifier import BatchVerifier, SignatureCheck, run_check

from . import PeerkeyTestCase, FAST_TESTS


def make_checks(n: int, *, seed: bytes = b'batch'):
    rng = DeterministicRandomSource(seed)
    checks = []
    for i in range(n):
        keypair = KeyPair.generate(compressed=bool(i % 2), rng=rng)
        msg32 = hashlib.sha256(i.to_bytes(4, 'big')).digest()
        compact = i % 3 == 0
        sig = keypair.sign_compact(msg32) if compact else keypair.sign_der(msg32)
        checks.append(SignatureCheck(keypair.to_public_bytes(), msg32, sig, compact))
    return checks


def break_check(check: SignatureCheck) -> SignatureCheck:
    return check._replace(msg32=hashlib.sha256(check.msg32).digest())


class TestBatchVerifier(PeerkeyTestCase):

    def setUp(self):
        super().setUp()
        self.config = SimpleConfig({'peerkey_path': self.peerkey_path})

    def test_run_check(self):
        for check in make_checks(6):
            self.assertTrue(run_check(check))
            self.assertTrue(run_check(check, check_order=True))
            self.assertFalse(run_check(break_check(check)))

    def test_all_valid(self):
        checks = make_checks(4 if FAST_TESTS else 12)
        with BatchVerifier(max_workers=4) as verifier:
            self.assertEqual([True] * len(checks), verifier.verify_all(checks))

    def test_results_keep_input_order(self):
        checks = make_checks(4 if FAST_TESTS else 12)
        broken = {1, 2, len(checks) - 1}
        checks = [break_check(c) if i in broken else c for i, c in enumerate(checks)]
        expected = [i not in broken for i in range(len(checks))]
        for workers in (1, 3, 8):
            with self.subTest(workers=workers):
                with BatchVerifier(max_workers=workers) as verifier:
                    self.assertEqual(expected, verifier.verify_all(checks))

    def test_malformed_items_fail_quietly(self):
        good = make_checks(1)[0]
        checks = [
            good,
            good._replace(pubkey=b'\x02' + b'\xff' * 32),
            good._replace(sig=b''),
            good._replace(msg32=good.msg32[:31]),
            good._replace(compact=not good.compact),
        ]
        with BatchVerifier(max_workers=2) as verifier:
            self.assertEqual([True, False, False, False, False], verifier.verify_all(checks))

    def test_empty_batch(self):
        with BatchVerifier() as verifier:
            self.assertEqual([], verifier.verify_all([]))

    def test_submit(self):
        check = make_checks(1)[0]
        with BatchVerifier(max_workers=1) as verifier:
            self.assertTrue(verifier.submit(check).result())
            self.assertFalse(verifier.submit(break_check(check)).result())

    def test_settings_from_config(self):
        self.config.ECC_VERIFY_WORKERS = 3
        self.config.ECC_RECOVER_CHECK_ORDER = True
        with BatchVerifier(self.config) as verifier:
            self.assertEqual(3, verifier.max_workers)
            self.assertTrue(verifier.check_order)
        with BatchVerifier(self.config, max_workers=2, check_order=False) as verifier:
            self.assertEqual(2, verifier.max_workers)
            self.assertFalse(verifier.check_order)

    def test_defaults_without_config(self):
        with BatchVerifier() as verifier:
            self.assertEqual(1, verifier.max_workers)
            self.assertFalse(verifier.check_order)

    def test_invalid_worker_count(self):
        with self.assertRaises(ValueError):
            BatchVerifier(max_workers=0)
        self.config.ECC_VERIFY_WORKERS = 0
        with self.assertRaises(ValueError):
            BatchVerifier(self.config)
