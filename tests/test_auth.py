"""Tests for account flows and tokens."""

from datetime import timedelta

import pytest

from marketplace.api.exceptions import (
    BadRequestError,
    ConflictError,
    UnauthorizedError,
)
from marketplace.auth.tokens import TokenService


@pytest.fixture
def auth(container):
    return container.auth


@pytest.fixture
def registered(auth):
    return auth.register("Ada@Example.com", "correct horse", "Ada")


def test_register_returns_user_and_tokens(container, registered):
    assert registered["user"]["email"] == "ada@example.com"
    assert registered["user"]["role"] == "customer"
    assert "passwordHash" not in registered["user"]

    payload = container.tokens.verify_access_token(registered["accessToken"])
    assert payload["userId"] == registered["user"]["id"]
    assert payload["role"] == "customer"


def test_register_hashes_password(database, registered):
    stored = database.users.find_one({"email": "ada@example.com"})
    assert stored["passwordHash"] != "correct horse"
    assert stored["passwordHash"].startswith("$2")


def test_register_duplicate_email_conflicts(auth, registered):
    with pytest.raises(ConflictError):
        auth.register("ada@example.com", "another password", "Imposter")


def test_register_rejects_unknown_role(auth):
    with pytest.raises(BadRequestError):
        auth.register("root@example.com", "password123", "Root", role="superuser")


def test_login(auth, registered):
    result = auth.login("ADA@example.com", "correct horse")

    assert result["user"]["id"] == registered["user"]["id"]
    assert result["accessToken"]


@pytest.mark.parametrize(
    "email,password",
    [("ada@example.com", "wrong"), ("nobody@example.com", "correct horse")],
)
def test_login_with_bad_credentials(auth, registered, email, password):
    with pytest.raises(UnauthorizedError):
        auth.login(email, password)


def test_refresh_issues_access_token(container, auth, registered):
    result = auth.refresh(registered["refreshToken"])

    payload = container.tokens.verify_access_token(result["accessToken"])
    assert payload["userId"] == registered["user"]["id"]


def test_refresh_rejects_access_token(auth, registered):
    with pytest.raises(UnauthorizedError):
        auth.refresh(registered["accessToken"])


def test_expired_token_is_rejected():
    tokens = TokenService("a", "b", access_ttl=timedelta(seconds=-1))
    token = tokens.create_access_token({"_id": "abc", "email": "x@example.com"})

    with pytest.raises(UnauthorizedError):
        tokens.verify_access_token(token)


def test_password_reset_flow(container, auth, registered):
    auth.forget_password("ada@example.com")

    message = container.mailer.outbox[-1]
    assert message["to"] == "ada@example.com"
    reset_token = message["body"].rsplit(" ", 1)[-1]

    auth.reset_password(reset_token, "new password")

    assert auth.login("ada@example.com", "new password")["user"]["email"] == "ada@example.com"
    with pytest.raises(BadRequestError):
        auth.reset_password(reset_token, "again")


def test_password_reset_token_expires(container, auth, registered, clock):
    auth.forget_password("ada@example.com")
    reset_token = container.mailer.outbox[-1]["body"].rsplit(" ", 1)[-1]

    clock.advance(hours=2)

    with pytest.raises(BadRequestError):
        auth.reset_password(reset_token, "new password")


def test_forget_password_for_unknown_email_is_silent(container, auth):
    auth.forget_password("ghost@example.com")

    assert container.mailer.outbox == []


def _sent_otp(container):
    body = container.mailer.outbox[-1]["body"]
    return body.split("code is ", 1)[1][:6]


def test_otp_login_is_single_use(container, auth, registered):
    auth.request_otp("ada@example.com")
    otp_code = _sent_otp(container)

    result = auth.verify_otp("ada@example.com", otp_code)
    assert result["user"]["id"] == registered["user"]["id"]

    with pytest.raises(UnauthorizedError):
        auth.verify_otp("ada@example.com", otp_code)


def test_otp_wrong_code(container, auth, registered):
    auth.request_otp("ada@example.com")
    otp_code = _sent_otp(container)
    wrong = "000000" if otp_code != "000000" else "111111"

    with pytest.raises(UnauthorizedError):
        auth.verify_otp("ada@example.com", wrong)


def test_otp_expires(container, auth, registered, clock):
    auth.request_otp("ada@example.com")
    otp_code = _sent_otp(container)

    clock.advance(minutes=11)

    with pytest.raises(UnauthorizedError):
        auth.verify_otp("ada@example.com", otp_code)
