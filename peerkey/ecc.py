# -*- coding: utf-8 -*-
#
# peerkey - secp256k1 keys and recoverable signatures
# Copyright (C) 2018 The Electrum developers
# Copyright (C) 2026 The peerkey developers
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

import hashlib
from typing import Union, Tuple, Optional

import ecdsa
from ecdsa import der, numbertheory
from ecdsa.ecdsa import curve_secp256k1, generator_secp256k1
from ecdsa.curves import SECP256k1
from ecdsa.ellipticcurve import PointJacobi, INFINITY
from ecdsa.keys import BadSignatureError, BadDigestError
from ecdsa.util import string_to_number, number_to_string

from .util import assert_bytes, CryptoFailure, InvalidKeyMaterial, RecoveryExhausted
from .logging import get_logger
from .rng import RandomSource, get_random_source
from . import sigencoding


_logger = get_logger(__name__)


CURVE_ORDER = SECP256k1.order
FIELD_PRIME = curve_secp256k1.p()


def point_to_ser(P, compressed=True) -> bytes:
    if isinstance(P, tuple):
        assert len(P) == 2, 'unexpected point: %s' % P
        x, y = P
    else:
        x, y = P.x(), P.y()
    if compressed:
        return bytes([2 + (y & 1)]) + number_to_string(x, CURVE_ORDER)
    return b'\x04' + number_to_string(x, CURVE_ORDER) + number_to_string(y, CURVE_ORDER)


def get_y_coord_from_x(x: int, *, odd: bool) -> Optional[int]:
    """Lift x onto the curve. None if x^3 + 7 has no square root mod p."""
    curve = curve_secp256k1
    _p = curve.p()
    alpha = (pow(x, 3, _p) + curve.a() * x + curve.b()) % _p
    try:
        beta = numbertheory.square_root_mod_prime(alpha, _p)
    except numbertheory.Error:
        return None
    if odd == bool(beta & 1):
        return beta
    return _p - beta


def ser_to_point(ser: bytes) -> Tuple[int, int]:
    """Parse a SEC1 public key encoding. Raises InvalidKeyMaterial."""
    assert_bytes(ser)
    if len(ser) == 33 and ser[0] in (0x02, 0x03):
        x = string_to_number(ser[1:])
        if x >= FIELD_PRIME:
            raise InvalidKeyMaterial('x coordinate out of range')
        y = get_y_coord_from_x(x, odd=ser[0] == 0x03)
        if y is None:
            raise InvalidKeyMaterial('point not on curve')
        return x, y
    if len(ser) == 65 and ser[0] == 0x04:
        x, y = string_to_number(ser[1:33]), string_to_number(ser[33:])
        if x >= FIELD_PRIME or y >= FIELD_PRIME or not curve_secp256k1.contains_point(x, y):
            raise InvalidKeyMaterial('point not on curve')
        return x, y
    if len(ser) not in (33, 65):
        raise InvalidKeyMaterial('unexpected public key length: {}'.format(len(ser)))
    raise InvalidKeyMaterial('unexpected first byte: {:#04x}'.format(ser[0]))


def is_secret_within_curve_range(secret: Union[int, bytes]) -> bool:
    if isinstance(secret, (bytes, bytearray)):
        secret = string_to_number(secret)
    return 0 < secret < CURVE_ORDER


class _LowSSigningKey(ecdsa.SigningKey):
    """Enforce low S values in signatures"""

    def sign_number(self, number, entropy=None, k=None):
        r, s = ecdsa.SigningKey.sign_number(self, number, entropy, k)
        if s > CURVE_ORDER//2:
            s = CURVE_ORDER - s
        return r, s


class ECPubkey(object):
    """A point on secp256k1, never the point at infinity."""

    def __init__(self, b: bytes):
        self._x, self._y = ser_to_point(b)

    @classmethod
    def from_point(cls, point) -> 'ECPubkey':
        if point == INFINITY:
            raise InvalidKeyMaterial('point at infinity')
        return ECPubkey(point_to_ser(point, compressed=False))

    def get_public_key_bytes(self, compressed=True) -> bytes:
        return point_to_ser(self.point(), compressed)

    def get_public_key_hex(self, compressed=True) -> str:
        return self.get_public_key_bytes(compressed).hex()

    def point(self) -> Tuple[int, int]:
        return self._x, self._y

    def _jacobi_point(self) -> PointJacobi:
        return PointJacobi(curve_secp256k1, self._x, self._y, 1, CURVE_ORDER)

    def _verifying_key(self) -> ecdsa.VerifyingKey:
        # the point was checked against the curve equation on construction
        return ecdsa.VerifyingKey.from_public_point(
            self._jacobi_point(), curve=SECP256k1, hashfunc=hashlib.sha256, validate_point=False)

    def __eq__(self, other):
        if not isinstance(other, ECPubkey):
            return False
        return self.point() == other.point()

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash(self.point())

    def __repr__(self):
        return f"<ECPubkey {self.get_public_key_hex()}>"

    def verify_der(self, msg32: bytes, der_sig: bytes) -> bool:
        """Returns whether der_sig is a valid signature of msg32 by this key.
        Malformed input of any kind yields False.
        """
        if not isinstance(msg32, (bytes, bytearray)) or len(msg32) != 32:
            return False
        if not isinstance(der_sig, (bytes, bytearray)):
            return False
        canonical = sigencoding.canonicalize_der_sig(der_sig)
        if canonical is None:
            return False
        try:
            return self._verifying_key().verify_digest(
                canonical, bytes(msg32), sigdecode=ecdsa.util.sigdecode_der)
        except (BadSignatureError, BadDigestError, der.UnexpectedDER):
            return False


def generator() -> ECPubkey:
    return ECPubkey.from_point(generator_secp256k1)


def recover_public_point(
        msg_hash: bytes,
        r: int,
        s: int,
        recid: int,
        *,
        check: bool = False,
) -> Optional[ECPubkey]:
    """Public key recovery, as in SEC1 v2 section 4.1.6.

    Returns the candidate public key for recovery id ``recid``, or None
    if that candidate does not exist. With ``check`` set, R is also
    required to have order n. Pure function, safe to call from any thread.
    """
    if not (0 <= recid <= 3):
        return None
    if not (0 < r < CURVE_ORDER and 0 < s < CURVE_ORDER):
        return None
    _p = FIELD_PRIME
    # 1.1
    x = r + (recid // 2) * CURVE_ORDER
    if x >= _p:
        return None
    # 1.3
    y = get_y_coord_from_x(x, odd=bool(recid & 1))
    if y is None:
        return None
    R = PointJacobi(curve_secp256k1, x, y, 1)
    # 1.4
    if check and not (R * CURVE_ORDER == INFINITY):
        return None
    # 1.5 compute e from message, keeping the leftmost bits of long digests
    e = string_to_number(msg_hash)
    excess_bits = 8 * len(msg_hash) - CURVE_ORDER.bit_length()
    if excess_bits > 0:
        e >>= excess_bits
    # 1.6 compute Q = r^-1 (sR - eG)
    inv_r = numbertheory.inverse_mod(r, CURVE_ORDER)
    u1 = (-e * inv_r) % CURVE_ORDER
    u2 = (s * inv_r) % CURVE_ORDER
    Q = generator_secp256k1.mul_add(u1, R, u2)
    if Q == INFINITY:
        return None
    return ECPubkey.from_point(Q)


class KeyPair(object):
    """A secp256k1 public key, optionally with its private scalar.

    Instances are only created by the factory classmethods and are
    never mutated afterwards. If a secret is held, the public point
    is always secret*G.
    """

    def __init__(self, *, pubkey: ECPubkey, secret_scalar: Optional[int] = None,
                 compressed: bool = True):
        assert isinstance(pubkey, ECPubkey), type(pubkey)
        self._pubkey = pubkey
        self._secret_scalar = secret_scalar
        self._compressed = bool(compressed)

    # construction ----->

    @classmethod
    def generate(cls, compressed: bool = True, *, rng: RandomSource = None) -> 'KeyPair':
        if rng is None:
            rng = get_random_source()
        secret = rng.randrange(CURVE_ORDER)
        return cls._from_secret_scalar(secret, compressed)

    @classmethod
    def _from_secret_scalar(cls, secret: int, compressed: bool) -> 'KeyPair':
        assert is_secret_within_curve_range(secret)
        point = generator_secp256k1 * secret
        try:
            pubkey = ECPubkey.from_point(point)
        except InvalidKeyMaterial as e:
            raise CryptoFailure(f'public key derivation failed: {e}') from e
        return cls(pubkey=pubkey, secret_scalar=secret, compressed=compressed)

    @classmethod
    def from_secret(cls, secret: bytes, compressed: bool = True) -> 'KeyPair':
        if not isinstance(secret, (bytes, bytearray)) or len(secret) != 32:
            raise InvalidKeyMaterial('unexpected size for secret. should be 32 bytes')
        scalar = string_to_number(secret)
        if not is_secret_within_curve_range(scalar):
            raise InvalidKeyMaterial('Invalid secret scalar (not within curve order)')
        return cls._from_secret_scalar(scalar, compressed)

    @classmethod
    def from_public_bytes(cls, b: bytes) -> 'KeyPair':
        if not isinstance(b, (bytes, bytearray)):
            raise InvalidKeyMaterial(f'expected bytes, got {type(b)}')
        pubkey = ECPubkey(bytes(b))
        return cls(pubkey=pubkey, compressed=len(b) == 33)

    @classmethod
    def from_private_der(cls, blob: bytes) -> 'KeyPair':
        """Parse a SEC1 ECPrivateKey (RFC 5915) structure.

        The curve parameters must name secp256k1. If a public key is
        embedded it must match the secret and its encoding decides
        ``compressed``; without one the key is uncompressed.
        """
        if not isinstance(blob, (bytes, bytearray)):
            raise InvalidKeyMaterial(f'expected bytes, got {type(blob)}')
        try:
            body, rest = der.remove_sequence(bytes(blob))
            if rest:
                raise der.UnexpectedDER('trailing junk after ECPrivateKey')
            version, body = der.remove_integer(body)
            if version != 1:
                raise der.UnexpectedDER(f'expected version 1, got {version}')
            if not body:
                raise der.UnexpectedDER("missing private key")
            secret_bytes, body = der.remove_octet_string(body)
            curve_oid = None
            pubkey_bytes = None
            if body[:1] == b'\xa0':
                _tag, params, body = der.remove_constructed(body)
                curve_oid, empty = der.remove_object(params)
                if empty:
                    raise der.UnexpectedDER('trailing junk after curve parameters')
            if body[:1] == b'\xa1':
                _tag, params, body = der.remove_constructed(body)
                pubkey_bytes, empty = der.remove_bitstring(params, 0)
                if empty:
                    raise der.UnexpectedDER('trailing junk after public key')
            if body:
                raise der.UnexpectedDER('unexpected data in ECPrivateKey')
        except (der.UnexpectedDER, IndexError) as e:
            # IndexError: python-ecdsa indexing past the end of truncated input
            raise InvalidKeyMaterial(f'malformed ECPrivateKey: {e}') from e
        if curve_oid != SECP256k1.oid:
            raise InvalidKeyMaterial(f'unexpected curve: {curve_oid}')
        if not (0 < len(secret_bytes) <= 32):
            raise InvalidKeyMaterial(f'unexpected size for secret: {len(secret_bytes)}')
        secret_bytes = secret_bytes.rjust(32, b'\x00')
        compressed = False
        if pubkey_bytes is not None:
            compressed = len(pubkey_bytes) == 33
        keypair = cls.from_secret(secret_bytes, compressed)
        if pubkey_bytes is not None and ECPubkey(pubkey_bytes) != keypair.public_key():
            raise InvalidKeyMaterial('embedded public key does not match the secret')
        return keypair

    # accessors ----->

    @property
    def compressed(self) -> bool:
        return self._compressed

    def has_secret(self) -> bool:
        return self._secret_scalar is not None

    def public_key(self) -> ECPubkey:
        return self._pubkey

    def to_public_bytes(self) -> bytes:
        return self._pubkey.get_public_key_bytes(self._compressed)

    def to_secret(self) -> Tuple[bytes, bool]:
        if not self.has_secret():
            raise CryptoFailure('public-only key has no secret')
        return number_to_string(self._secret_scalar, CURVE_ORDER), self._compressed

    def to_private_der(self) -> bytes:
        if not self.has_secret():
            raise CryptoFailure('public-only key has no secret')
        point_encoding = "compressed" if self._compressed else "uncompressed"
        return self._signing_key().to_der(point_encoding=point_encoding)

    def with_compression(self, compressed: bool) -> 'KeyPair':
        return KeyPair(pubkey=self._pubkey, secret_scalar=self._secret_scalar,
                       compressed=compressed)

    def copy(self) -> 'KeyPair':
        return self.with_compression(self._compressed)

    def is_valid(self) -> bool:
        """Whether a secret is held and secret*G re-derives the public key."""
        if not self.has_secret():
            return False
        if not is_secret_within_curve_range(self._secret_scalar):
            return False
        point = generator_secp256k1 * self._secret_scalar
        if point == INFINITY:
            return False
        return (point.x(), point.y()) == self._pubkey.point()

    def __eq__(self, other):
        if not isinstance(other, KeyPair):
            return False
        return (self.to_public_bytes() == other.to_public_bytes()
                and self._secret_scalar == other._secret_scalar)

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash(self.to_public_bytes())

    def __repr__(self):
        kind = "KeyPair" if self.has_secret() else "PublicKey"
        return f"<{kind} {self.to_public_bytes().hex()}>"

    # signing ----->

    def _signing_key(self) -> _LowSSigningKey:
        return _LowSSigningKey.from_secret_exponent(
            self._secret_scalar, curve=SECP256k1, hashfunc=hashlib.sha256)

    def _sign_r_and_s(self, msg32: bytes) -> Tuple[int, int]:
        if not self.has_secret():
            raise CryptoFailure('cannot sign with a public-only key')
        if not (isinstance(msg32, (bytes, bytearray)) and len(msg32) == 32):
            raise CryptoFailure('msg32 to be signed must be bytes, and 32 bytes exactly')
        def sigencode_r_and_s(r, s, order):
            return r, s
        private_key = self._signing_key()
        r, s = private_key.sign_digest_deterministic(
            bytes(msg32), hashfunc=hashlib.sha256, sigencode=sigencode_r_and_s)
        return r, s

    def sign_der(self, msg32: bytes) -> bytes:
        r, s = self._sign_r_and_s(msg32)
        sig = sigencoding.der_sig_from_r_and_s(r, s)
        if not self._pubkey.verify_der(msg32, sig):
            _logger.error('sanity check verifying our own signature failed')
            raise CryptoFailure('Sanity check verifying our own signature failed.')
        return sig

    def sign_compact(self, msg32: bytes) -> bytes:
        r, s = self._sign_r_and_s(msg32)
        for recid in range(4):
            candidate = recover_public_point(msg32, r, s, recid, check=True)
            if candidate is not None and candidate == self._pubkey:
                break
        else:
            raise RecoveryExhausted()
        return sigencoding.construct_compact_sig(r, s, recid, self._compressed)

    # verification ----->

    def verify_der(self, msg32: bytes, der_sig: bytes) -> bool:
        return self._pubkey.verify_der(msg32, der_sig)

    def verify_compact(self, msg32: bytes, sig65: bytes, *, check_order: bool = False) -> bool:
        recovered = recover_compact(msg32, sig65, check_order=check_order)
        if recovered is None:
            return False
        return recovered.to_public_bytes() == self.to_public_bytes()


PubkeyLike = Union[KeyPair, ECPubkey, bytes]


def _to_ecpubkey(pubkey: PubkeyLike) -> ECPubkey:
    if isinstance(pubkey, KeyPair):
        return pubkey.public_key()
    if isinstance(pubkey, ECPubkey):
        return pubkey
    return KeyPair.from_public_bytes(pubkey).public_key()


def verify_der(pubkey: PubkeyLike, msg32: bytes, der_sig: bytes) -> bool:
    try:
        ecpubkey = _to_ecpubkey(pubkey)
    except InvalidKeyMaterial:
        return False
    return ecpubkey.verify_der(msg32, der_sig)


def recover_compact(msg32: bytes, sig65: bytes, *, check_order: bool = False) -> Optional[KeyPair]:
    """Recover the signer of msg32 from a compact signature.
    Returns a public-only KeyPair, or None.
    """
    if not isinstance(msg32, (bytes, bytearray)) or len(msg32) != 32:
        return None
    parsed = sigencoding.parse_compact_sig(sig65)
    if parsed is None:
        return None
    r, s, recid, compressed = parsed
    pubkey = recover_public_point(bytes(msg32), r, s, recid, check=check_order)
    if pubkey is None:
        return None
    return KeyPair(pubkey=pubkey, compressed=compressed)


def verify_compact(pubkey: Union[KeyPair, bytes], msg32: bytes, sig65: bytes,
                   *, check_order: bool = False) -> bool:
    """The serialized public keys are compared, so a compact signature
    made by a compressed key does not verify against the uncompressed
    encoding of the same point.
    """
    if not isinstance(pubkey, KeyPair):
        try:
            pubkey = KeyPair.from_public_bytes(pubkey)
        except InvalidKeyMaterial:
            return False
    return pubkey.verify_compact(msg32, sig65, check_order=check_order)
