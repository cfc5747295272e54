"""Unit tests for auth/otp.py -- one-time code generation, digesting and expiry."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from api.models import VerifyEmailRequest
from auth import otp


def test_generate_code_is_six_digits_by_default():
    for _ in range(50):
        code = otp.generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_generate_code_custom_length():
    assert len(otp.generate_code(8)) == 8


def test_issued_codes_pass_request_validation():
    for _ in range(20):
        body = VerifyEmailRequest(email="ada@example.com", code=otp.issue().code)
        assert len(body.code) == otp.CODE_LENGTH


def test_hash_code_is_deterministic_sha256():
    assert otp.hash_code("123456") == otp.hash_code("123456")
    assert len(otp.hash_code("123456")) == 64
    assert otp.hash_code("123456") != otp.hash_code("123457")


def test_hash_code_ignores_surrounding_whitespace():
    assert otp.hash_code(" 123456\n") == otp.hash_code("123456")


def test_issue_pairs_code_and_digest():
    issued = otp.issue()
    assert issued.digest == otp.hash_code(issued.code)
    assert issued.code not in repr(issued)


class TestIsExpired:
    def test_zero_ttl_never_expires(self):
        long_ago = (datetime.now(timezone.utc) - timedelta(days=365)).isoformat()
        assert otp.is_expired(long_ago, ttl_seconds=0) is False
        assert otp.is_expired(None, ttl_seconds=0) is False

    def test_fresh_code_within_ttl(self):
        now = datetime.now(timezone.utc).isoformat()
        assert otp.is_expired(now, ttl_seconds=600) is False

    def test_old_code_past_ttl(self):
        old = (datetime.now(timezone.utc) - timedelta(minutes=11)).isoformat()
        assert otp.is_expired(old, ttl_seconds=600) is True

    def test_missing_or_malformed_timestamp_counts_as_expired(self):
        assert otp.is_expired(None, ttl_seconds=600) is True
        assert otp.is_expired("yesterday", ttl_seconds=600) is True

    def test_naive_timestamp_treated_as_utc(self):
        naive = datetime.now(timezone.utc).replace(tzinfo=None).isoformat()
        assert otp.is_expired(naive, ttl_seconds=600) is False
