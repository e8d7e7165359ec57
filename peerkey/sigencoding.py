# Copyright (C) 2026 The peerkey developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

"""Signature wire formats.

DER: ``SEQUENCE { INTEGER r, INTEGER s }``. Incoming signatures are
first re-encoded with minimal length fields (normalize_der_sig) and then
strictly decoded by python-ecdsa, so a signature padded with extra
length-size bytes verifies the same as its canonical form.

Compact: 65 bytes, ``header || r(32) || s(32)``, with
``header = 27 + recid + (4 if compressed else 0)``.
"""

from typing import Optional, Tuple

import ecdsa
from ecdsa import der
from ecdsa.curves import SECP256k1


CURVE_ORDER = SECP256k1.order

# more length bytes than this cannot describe a buffer we could hold
MAX_DER_LENGTH_BYTES = 8
MAX_DER_LENGTH = 0x7fffffff

COMPACT_SIG_LEN = 65
COMPACT_HEADER_BASE = 27
COMPACT_HEADER_COMPRESSED = 4


def _parse_length(buf: bytes, pos: int) -> Optional[Tuple[int, int]]:
    """Parse a DER length field starting at buf[pos].
    Returns (length, position after the field), or None if malformed.
    Non-minimal encodings are accepted here; that is the point.
    """
    if pos >= len(buf):
        return None
    first = buf[pos]
    pos += 1
    if not first & 0x80:
        return first, pos
    nbytes = first & 0x7f
    if nbytes == 0 or nbytes > MAX_DER_LENGTH_BYTES:
        return None
    if pos + nbytes > len(buf):
        return None
    length = int.from_bytes(buf[pos:pos + nbytes], 'big')
    if length > MAX_DER_LENGTH:
        return None
    return length, pos + nbytes


def _parse_integer(buf: bytes, pos: int) -> Optional[Tuple[bytes, int]]:
    if pos >= len(buf) or buf[pos] != 0x02:
        return None
    parsed = _parse_length(buf, pos + 1)
    if parsed is None:
        return None
    length, start = parsed
    end = start + length
    if end > len(buf):
        return None
    return buf[start:end], end


def _encode_integer_bytes(value: bytes) -> bytes:
    # value bytes are kept as they are, only the length is re-encoded
    return b'\x02' + der.encode_length(len(value)) + value


def normalize_der_sig(sig: bytes) -> Optional[bytes]:
    """Re-encode a DER signature with minimal length fields.

    Returns None if sig is not a SEQUENCE of two INTEGERs, if a length
    field is malformed, if the declared SEQUENCE length does not match
    its content, or if anything trails the SEQUENCE.
    """
    if not isinstance(sig, (bytes, bytearray)):
        return None
    sig = bytes(sig)
    if len(sig) < 2 or sig[0] != 0x30:
        return None
    parsed = _parse_length(sig, 1)
    if parsed is None:
        return None
    total_length, body_start = parsed
    r = _parse_integer(sig, body_start)
    if r is None:
        return None
    r_value, s_start = r
    s = _parse_integer(sig, s_start)
    if s is None:
        return None
    s_value, end = s
    if end != len(sig) or end - body_start != total_length:
        return None
    body = _encode_integer_bytes(r_value) + _encode_integer_bytes(s_value)
    return b'\x30' + der.encode_length(len(body)) + body


def get_r_and_s_from_der_sig(der_sig: bytes) -> Tuple[int, int]:
    """Strict decode. Raises der.UnexpectedDER on anything that is not
    canonical DER (negative or zero-padded integers, trailing bytes).
    """
    return ecdsa.util.sigdecode_der(der_sig, CURVE_ORDER)


def der_sig_from_r_and_s(r: int, s: int) -> bytes:
    return ecdsa.util.sigencode_der(r, s, CURVE_ORDER)


def canonicalize_der_sig(sig: bytes) -> Optional[bytes]:
    """normalize_der_sig followed by a strict decode/encode round trip.
    None if either step rejects the input.
    """
    normalized = normalize_der_sig(sig)
    if normalized is None:
        return None
    try:
        r, s = get_r_and_s_from_der_sig(normalized)
    except der.UnexpectedDER:
        return None
    return der_sig_from_r_and_s(r, s)


def parse_compact_header(header: int) -> Optional[Tuple[int, bool]]:
    """Returns (recid, compressed), or None if header is outside [27, 34]."""
    if not (COMPACT_HEADER_BASE <= header < COMPACT_HEADER_BASE + 8):
        return None
    compressed = header >= COMPACT_HEADER_BASE + COMPACT_HEADER_COMPRESSED
    recid = (header - COMPACT_HEADER_BASE) % 4
    return recid, compressed


def construct_compact_header(recid: int, compressed: bool) -> int:
    if not (0 <= recid <= 3):
        raise ValueError('recid is {}, but should be 0 <= recid <= 3'.format(recid))
    comp = COMPACT_HEADER_COMPRESSED if compressed else 0
    return COMPACT_HEADER_BASE + recid + comp


def construct_compact_sig(r: int, s: int, recid: int, compressed: bool) -> bytes:
    header = construct_compact_header(recid, compressed)
    return bytes([header]) + ecdsa.util.sigencode_string(r, s, CURVE_ORDER)


def parse_compact_sig(sig65: bytes) -> Optional[Tuple[int, int, int, bool]]:
    """Returns (r, s, recid, compressed), or None if sig65 has the wrong
    length or an out-of-range header. r and s are not range-checked.
    """
    if not isinstance(sig65, (bytes, bytearray)) or len(sig65) != COMPACT_SIG_LEN:
        return None
    parsed = parse_compact_header(sig65[0])
    if parsed is None:
        return None
    recid, compressed = parsed
    r, s = ecdsa.util.sigdecode_string(bytes(sig65[1:]), CURVE_ORDER)
    return r, s, recid, compressed
