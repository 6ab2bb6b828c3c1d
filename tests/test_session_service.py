"""Tests for the session issuer."""

import re

import pytest

from crm.core.errors import MalformedTokenError
from crm.core.tokens import verify_token
from crm.services.session_service import new_family_id


def test_family_id_is_128_bit_hex():
    family_id = new_family_id()
    assert re.fullmatch(r"[0-9a-f]{32}", family_id)
    assert new_family_id() != family_id


def test_access_token_carries_identity(issuer, config, clock):
    token = issuer.issue_access_token(1, "user")

    claims = verify_token(token, config.ACCESS_TOKEN_SECRET, now=clock())

    assert claims["sub"] == "1"
    assert claims["role"] == "user"
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] == 15 * 60


def test_access_token_is_not_signed_with_refresh_secret(issuer, config, clock):
    token = issuer.issue_access_token(1, "user")
    with pytest.raises(MalformedTokenError):
        verify_token(token, config.REFRESH_TOKEN_SECRET, now=clock())


def test_refresh_token_is_recorded_under_new_family(issuer, store, config, clock):
    issued = issuer.issue_refresh_token(1)

    record = store.get(issued.token)
    claims = verify_token(issued.token, config.REFRESH_TOKEN_SECRET, now=clock())

    assert record.owner_id == 1
    assert record.family_id == issued.family_id
    assert claims["family_id"] == issued.family_id
    assert claims["type"] == "refresh"
    assert "role" not in claims
    assert claims["exp"] - claims["iat"] == 7 * 24 * 60 * 60


def test_refresh_token_keeps_given_family(issuer):
    issued = issuer.issue_refresh_token(1, family_id="f" * 32)
    assert issued.family_id == "f" * 32


def test_tokens_issued_in_same_second_differ(issuer):
    first = issuer.issue_refresh_token(1, family_id="fam")
    second = issuer.issue_refresh_token(1, family_id="fam")
    assert first.token != second.token


def test_start_session_returns_pair(issuer, store):
    session = issuer.start_session(2, "manager")

    assert store.get(session.refresh_token).family_id == session.family_id
    assert session.access_token != session.refresh_token
