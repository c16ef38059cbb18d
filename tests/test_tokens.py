from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from core.security import (
    ExpiredToken,
    InvalidToken,
    MalformedToken,
    TokenIssuer,
    get_token_issuer,
)

SECRET = "unit-test-secret-" + "s" * 40
OTHER_SECRET = "another-secret-" + "o" * 40

CLAIMS = {
    "sub": "3f1c1e3a-0000-4000-8000-000000000001",
    "email": "user@example.com",
    "role": "user",
    "firstName": "Test",
    "lastName": "User",
}


def test_decode_recovers_access_claims() -> None:
    issuer = TokenIssuer(SECRET)
    token = issuer.issue_access_token(CLAIMS)

    claims = issuer.decode(token)
    assert claims is not None
    for key, value in CLAIMS.items():
        assert claims[key] == value
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] == 15 * 60


def test_verify_returns_the_same_claims() -> None:
    issuer = TokenIssuer(SECRET)
    token = issuer.issue_access_token(CLAIMS)
    assert issuer.verify(token) == issuer.decode(token)


def test_refresh_token_carries_only_subject_and_type() -> None:
    issuer = TokenIssuer(SECRET)
    claims = issuer.verify(issuer.issue_refresh_token(CLAIMS["sub"]))
    assert claims["sub"] == CLAIMS["sub"]
    assert claims["type"] == "refresh"
    assert "email" not in claims
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600


def test_tokens_minted_back_to_back_differ() -> None:
    issuer = TokenIssuer(SECRET)
    assert issuer.issue_refresh_token("u1") != issuer.issue_refresh_token("u1")


def test_algorithm_is_in_the_header() -> None:
    token = TokenIssuer(SECRET).issue_access_token(CLAIMS)
    assert jwt.get_unverified_header(token)["alg"] == "HS256"


def test_expired_token() -> None:
    issuer = TokenIssuer(SECRET, access_ttl=timedelta(seconds=-30))
    token = issuer.issue_access_token(CLAIMS)
    with pytest.raises(ExpiredToken):
        issuer.verify(token)
    # still readable for display
    assert issuer.decode(token)["email"] == CLAIMS["email"]


def test_token_signed_with_another_secret() -> None:
    token = TokenIssuer(OTHER_SECRET).issue_access_token(CLAIMS)
    with pytest.raises(InvalidToken):
        TokenIssuer(SECRET).verify(token)


def test_tampered_payload_is_rejected() -> None:
    issuer = TokenIssuer(SECRET)
    header, _, signature = issuer.issue_access_token(CLAIMS).split(".")
    forged_payload = jwt.encode({**CLAIMS, "role": "admin", "type": "access"}, OTHER_SECRET).split(".")[1]
    with pytest.raises(InvalidToken):
        issuer.verify(".".join([header, forged_payload, signature]))


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c", "not.a.token.at.all"])
def test_malformed_tokens(token: str) -> None:
    issuer = TokenIssuer(SECRET)
    with pytest.raises(MalformedToken):
        issuer.verify(token)
    assert issuer.decode(token) is None


def test_missing_type_claim_is_malformed() -> None:
    exp = datetime.now(timezone.utc) + timedelta(minutes=5)
    token = jwt.encode({"sub": "u1", "exp": exp}, SECRET, algorithm="HS256")
    with pytest.raises(MalformedToken):
        TokenIssuer(SECRET).verify(token)


def test_issuer_from_settings_uses_configured_ttls() -> None:
    issuer = get_token_issuer()
    assert issuer.access_ttl == timedelta(minutes=15)
    assert issuer.refresh_ttl == timedelta(days=7)
    assert issuer is get_token_issuer()
