"""Tests for webhook signature verification (constant-time HMAC)."""

from __future__ import annotations

import base64
import hashlib
import hmac

from helpers import SECRET, sign
from utils import SignatureCheck, verify_signature

BODY = b'{"ref": "refs/heads/main", "after": "abc123"}'


class TestValidSignatures:

    def test_sha256_prefixed_hex(self):
        assert verify_signature(BODY, SECRET, sign(BODY)) is SignatureCheck.VALID

    def test_sha256_uppercase_prefix(self):
        digest = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert verify_signature(BODY, SECRET, f"SHA256={digest}") is SignatureCheck.VALID

    def test_sha1_prefixed_hex(self):
        digest = hmac.new(SECRET.encode(), BODY, hashlib.sha1).hexdigest()
        assert verify_signature(BODY, SECRET, f"sha1={digest}") is SignatureCheck.VALID

    def test_bare_hex_is_sha256(self):
        digest = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert verify_signature(BODY, SECRET, digest) is SignatureCheck.VALID

    def test_base64_digest(self):
        digest = hmac.new(SECRET.encode(), BODY, hashlib.sha256).digest()
        header = base64.b64encode(digest).decode()
        assert verify_signature(BODY, SECRET, header) is SignatureCheck.VALID

    def test_empty_body(self):
        assert verify_signature(b"", SECRET, sign(b"")) is SignatureCheck.VALID


class TestInvalidSignatures:

    def test_every_flipped_byte_is_invalid(self):
        header = sign(BODY)
        for i in range(len(BODY)):
            tampered = bytearray(BODY)
            tampered[i] ^= 0x01
            assert verify_signature(bytes(tampered), SECRET, header) is SignatureCheck.INVALID, i

    def test_different_secret(self):
        assert verify_signature(BODY, SECRET, sign(BODY, "other-secret")) is SignatureCheck.INVALID

    def test_missing_header(self):
        assert verify_signature(BODY, SECRET, None) is SignatureCheck.INVALID
        assert verify_signature(BODY, SECRET, "") is SignatureCheck.INVALID

    def test_malformed_headers_never_raise(self):
        for header in ("sha256=", "sha256=zz", "md5=abcdef", "not a signature", "sha256=%%%", "=" * 10):
            assert verify_signature(BODY, SECRET, header) is SignatureCheck.INVALID

    def test_truncated_digest(self):
        assert verify_signature(BODY, SECRET, sign(BODY)[:-2]) is SignatureCheck.INVALID

    def test_empty_secret_never_validates(self):
        assert verify_signature(BODY, "", sign(BODY, "")) is SignatureCheck.INVALID

    def test_sha1_digest_under_sha256_prefix(self):
        digest = hmac.new(SECRET.encode(), BODY, hashlib.sha1).hexdigest()
        assert verify_signature(BODY, SECRET, f"sha256={digest}") is SignatureCheck.INVALID
