from peerkey import sigencoding
from peerkey.sigencoding import (normalize_der_sig, canonicalize_der_sig, parse_compact_header,
                                 construct_compact_header, construct_compact_sig, parse_compact_sig,
                                 get_r_and_s_from_der_sig, der_sig_from_r_and_s, CURVE_ORDER)

from . import PeerkeyTestCase


R_HEX = "934b1ea10a4b3c1757e2b0c017d0b6143ce3c9a7e6a4a49860d7a6ab210ee3d8"
S_HEX = "2442ce9d2b916064108014783e923ec36b49743e2ffa1c4496f01a512aafd9e5"
CANONICAL = bytes.fromhex("3045" "022100" + R_HEX + "0220" + S_HEX)


class TestNormalizeDER(PeerkeyTestCase):

    def test_canonical_is_unchanged(self):
        self.assertEqual(CANONICAL, normalize_der_sig(CANONICAL))
        self.assertEqual(CANONICAL, canonicalize_der_sig(CANONICAL))

    def test_long_form_lengths_are_shortened(self):
        cases = [
            # sequence length in one extra byte
            "308145" "022100" + R_HEX + "0220" + S_HEX,
            # sequence length in four bytes
            "308400000045" "022100" + R_HEX + "0220" + S_HEX,
            # integer lengths padded too
            "308400000048" "02820021" "00" + R_HEX + "028120" + S_HEX,
            # eight length bytes is the maximum
            "30880000000000000045" "022100" + R_HEX + "0220" + S_HEX,
        ]
        for sig_hex in cases:
            with self.subTest(sig=sig_hex):
                self.assertEqual(CANONICAL, normalize_der_sig(bytes.fromhex(sig_hex)))
                self.assertEqual(CANONICAL, canonicalize_der_sig(bytes.fromhex(sig_hex)))

    def test_rejects_bad_framing(self):
        body = "022100" + R_HEX + "0220" + S_HEX
        cases = [
            "",
            "30",
            "3100" + body,                          # wrong tag
            "3044" + body,                          # declared length too short
            "3046" + body,                          # declared length too long
            "3045" + body + "00",                   # trailing byte
            "3080" + body + "0000",                 # indefinite length
            "3089000000000000000045" + body,        # nine length bytes
            "308480000045" + body,                  # length above 2**31 - 1
            "3045" "032100" + R_HEX + "0220" + S_HEX,   # r is not an INTEGER
            "3023" "022100" + R_HEX,                # s missing
            "3045" "022200" + R_HEX + "0220" + S_HEX,   # r overruns
            "3082" "0045" "022100" + R_HEX[:-2],    # truncated
        ]
        for sig_hex in cases:
            with self.subTest(sig=sig_hex):
                self.assertIsNone(normalize_der_sig(bytes.fromhex(sig_hex)))

    def test_integer_bytes_are_kept(self):
        # a superfluous zero pad survives normalization, strict decoding rejects it
        sig = bytes.fromhex("3046" "02220000" + R_HEX + "0220" + S_HEX)
        self.assertEqual(sig, normalize_der_sig(sig))
        self.assertIsNone(canonicalize_der_sig(sig))
        # negative s
        sig = bytes.fromhex("3045" "022100" + R_HEX + "0220" + "a4" + S_HEX[2:])
        self.assertIsNotNone(normalize_der_sig(sig))
        self.assertIsNone(canonicalize_der_sig(sig))

    def test_rejects_non_bytes(self):
        for sig in (CANONICAL.hex(), None, 0x30, list(CANONICAL)):
            with self.subTest(sig=sig):
                self.assertIsNone(normalize_der_sig(sig))
                self.assertIsNone(canonicalize_der_sig(sig))
        self.assertEqual(CANONICAL, normalize_der_sig(bytearray(CANONICAL)))

    def test_r_and_s(self):
        r, s = get_r_and_s_from_der_sig(CANONICAL)
        self.assertEqual(int(R_HEX, 16), r)
        self.assertEqual(int(S_HEX, 16), s)
        self.assertEqual(CANONICAL, der_sig_from_r_and_s(r, s))


class TestCompactEncoding(PeerkeyTestCase):

    def test_header(self):
        self.assertIsNone(parse_compact_header(26))
        self.assertIsNone(parse_compact_header(35))
        self.assertIsNone(parse_compact_header(0))
        self.assertEqual((0, False), parse_compact_header(27))
        self.assertEqual((3, False), parse_compact_header(30))
        self.assertEqual((0, True), parse_compact_header(31))
        self.assertEqual((3, True), parse_compact_header(34))
        for recid in range(4):
            for compressed in (False, True):
                header = construct_compact_header(recid, compressed)
                self.assertEqual((recid, compressed), parse_compact_header(header))
        with self.assertRaises(ValueError):
            construct_compact_header(4, True)

    def test_sig(self):
        r, s = int(R_HEX, 16), int(S_HEX, 16)
        sig65 = construct_compact_sig(r, s, 1, True)
        self.assertEqual(sigencoding.COMPACT_SIG_LEN, len(sig65))
        self.assertEqual(bytes.fromhex("20" + R_HEX + S_HEX), sig65)
        self.assertEqual((r, s, 1, True), parse_compact_sig(sig65))
        self.assertIsNone(parse_compact_sig(sig65[:-1]))
        self.assertIsNone(parse_compact_sig(b'\x23' + sig65[1:]))
        self.assertIsNone(parse_compact_sig(None))

    def test_r_and_s_are_not_range_checked(self):
        sig65 = b'\x1b' + CURVE_ORDER.to_bytes(32, 'big') + bytes(32)
        self.assertEqual((CURVE_ORDER, 0, 0, False), parse_compact_sig(sig65))
