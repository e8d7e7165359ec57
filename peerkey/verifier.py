# Copyright (C) 2026 The peerkey developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import concurrent.futures
from typing import NamedTuple, Sequence, List, Optional, TYPE_CHECKING

from .ecc import verify_der, verify_compact
from .logging import Logger
from .util import profiler

if TYPE_CHECKING:
    from .simple_config import SimpleConfig


class SignatureCheck(NamedTuple):
    pubkey: bytes      # 33 or 65 byte SEC1 encoding
    msg32: bytes       # digest that was signed
    sig: bytes         # DER signature, or 65 byte compact signature
    compact: bool = False


def run_check(check: SignatureCheck, *, check_order: bool = False) -> bool:
    if check.compact:
        return verify_compact(check.pubkey, check.msg32, check.sig, check_order=check_order)
    return verify_der(check.pubkey, check.msg32, check.sig)


class BatchVerifier(Logger):
    """Verifies many signatures on a thread pool.

    Each item is an independent pure computation, so the verdicts are
    the same as running run_check sequentially; they are returned in
    input order.
    """

    LOGGING_SHORTCUT = 'V'

    def __init__(self, config: 'SimpleConfig' = None, *, max_workers: Optional[int] = None,
                 check_order: Optional[bool] = None):
        Logger.__init__(self)
        if max_workers is None:
            max_workers = config.ECC_VERIFY_WORKERS if config else 1
        if check_order is None:
            check_order = config.ECC_RECOVER_CHECK_ORDER if config else False
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers
        self.check_order = check_order
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='sig_verifier')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def submit(self, check: SignatureCheck) -> 'concurrent.futures.Future[bool]':
        return self._executor.submit(run_check, check, check_order=self.check_order)

    @profiler(min_threshold=1)
    def verify_all(self, checks: Sequence[SignatureCheck]) -> List[bool]:
        futures = [self.submit(check) for check in checks]
        results = [f.result() for f in futures]
        num_failed = results.count(False)
        if num_failed:
            self.logger.info(f"{num_failed} of {len(results)} signatures failed verification")
        return results
