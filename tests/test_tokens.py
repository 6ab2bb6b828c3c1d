"""Tests for the token codec."""

import pytest
from jose import jwt

from crm.core.errors import (
    EncodingError,
    ExpiredTokenError,
    InvalidTokenError,
    MalformedTokenError,
)
from crm.core.tokens import TokenPurpose, issue_token, verify_token

SECRET = "codec-secret-one"
OTHER_SECRET = "codec-secret-two"
T0 = 1_700_000_000


class TestIssue:
    def test_claims_round_trip_with_iat_and_exp(self):
        token = issue_token({"sub": "1", "role": "user", "type": "access"}, SECRET, 900, now=T0)

        claims = verify_token(token, SECRET, now=T0)

        assert claims["sub"] == "1"
        assert claims["role"] == "user"
        assert claims["type"] == TokenPurpose.ACCESS.value
        assert claims["iat"] == T0
        assert claims["exp"] == T0 + 900

    def test_caller_claims_are_not_mutated(self):
        claims = {"sub": "1"}
        issue_token(claims, SECRET, 60, now=T0)
        assert claims == {"sub": "1"}

    def test_unserializable_claims_raise_encoding_error(self):
        with pytest.raises(EncodingError):
            issue_token({"sub": "1", "blob": object()}, SECRET, 60, now=T0)


class TestExpiry:
    @pytest.mark.parametrize("offset", [0, 1, 450, 899])
    def test_valid_inside_window(self, offset):
        token = issue_token({"sub": "1"}, SECRET, 900, now=T0)
        assert verify_token(token, SECRET, now=T0 + offset)["sub"] == "1"

    @pytest.mark.parametrize("offset", [900, 901, 86400])
    def test_expired_at_or_after_deadline(self, offset):
        token = issue_token({"sub": "1"}, SECRET, 900, now=T0)
        with pytest.raises(ExpiredTokenError):
            verify_token(token, SECRET, now=T0 + offset)

    @pytest.mark.parametrize("offset", [0, 5, 9.5, 9.99])
    def test_fractional_issue_time_keeps_full_window(self, offset):
        issued_at = T0 + 0.9
        token = issue_token({"sub": "1"}, SECRET, 10, now=issued_at)
        assert verify_token(token, SECRET, now=issued_at + offset)["sub"] == "1"

    def test_fractional_issue_time_valid_past_whole_second(self):
        token = issue_token({"sub": "1"}, SECRET, 10, now=T0 + 0.9)
        assert verify_token(token, SECRET, now=T0 + 10.5)["sub"] == "1"

    def test_fractional_issue_time_expires_at_rounded_deadline(self):
        token = issue_token({"sub": "1"}, SECRET, 10, now=T0 + 0.9)
        with pytest.raises(ExpiredTokenError):
            verify_token(token, SECRET, now=T0 + 11)


class TestMalformed:
    def test_wrong_secret(self):
        token = issue_token({"sub": "1"}, SECRET, 60, now=T0)
        with pytest.raises(MalformedTokenError):
            verify_token(token, OTHER_SECRET, now=T0)

    def test_tampered_payload(self):
        token = issue_token({"sub": "1", "role": "user"}, SECRET, 60, now=T0)
        header, _, signature = token.split(".")
        forged_payload = jwt.encode(
            {"sub": "1", "role": "admin", "iat": T0, "exp": T0 + 60}, OTHER_SECRET
        ).split(".")[1]

        with pytest.raises(MalformedTokenError):
            verify_token(f"{header}.{forged_payload}.{signature}", SECRET, now=T0)

    @pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c", None])
    def test_unparsable_input(self, garbage):
        with pytest.raises(MalformedTokenError):
            verify_token(garbage, SECRET, now=T0)

    def test_missing_exp_is_malformed(self):
        token = jwt.encode({"sub": "1"}, SECRET, algorithm="HS256")
        with pytest.raises(MalformedTokenError):
            verify_token(token, SECRET, now=T0)

    def test_malformed_is_an_invalid_token_error(self):
        assert issubclass(MalformedTokenError, InvalidTokenError)
