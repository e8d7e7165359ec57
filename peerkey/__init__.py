from .version import PEERKEY_VERSION
from .util import ECCError, CryptoFailure, InvalidKeyMaterial, RecoveryExhausted
from .ecc import (KeyPair, ECPubkey, verify_der, recover_compact, verify_compact,
                  recover_public_point)
from .sigencoding import normalize_der_sig, parse_compact_header
from .rng import RandomSource, SystemRandomSource, get_random_source, set_random_source
from .simple_config import SimpleConfig
from .logging import get_logger


__version__ = PEERKEY_VERSION

_logger = get_logger(__name__)


# Ensure that asserts are enabled. For sanity and paranoia, we require this.
# Code *should not rely* on asserts being enabled. In particular, safety and security checks should
# always explicitly raise exceptions. However, this rule is mistakenly broken occasionally...
try:
    assert False  # noqa: B011
except AssertionError:
    pass
else:
    raise ImportError("Running with asserts disabled. Refusing to continue. Exiting...")
