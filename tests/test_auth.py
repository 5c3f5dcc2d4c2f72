"""Test sign in, sign out, password reset and state token validation."""

import jwt as pyjwt
from datetime import datetime, timedelta, timezone
from fastapi import status

from app.src import argon2
from app.src.constants import COOKIE_NAME, JWT_ALGORITHM, JWT_SECRET
from app.src.enums import UserRole
from app.src.jwt import makeToken, readToken
from app.src.urls import URL_PASSWORD, URL_TOKEN

from helpers import PASSWORD, addUser, clientFor

SIGN_IN = "/auth" + URL_TOKEN


class TestSignIn:
    """Test the sign in endpoint."""

    def test_sign_in_sets_cookie(self, anonymous_client, operator, events):
        """Test a valid sign in returns the state token as an httpOnly cookie."""
        response = anonymous_client.post(
            SIGN_IN, data={"username": "operator", "password": PASSWORD}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"message": "User signed in"}
        setCookie = response.headers["set-cookie"].lower()
        assert setCookie.startswith(f"{COOKIE_NAME}=")
        assert "httponly" in setCookie

        identity = readToken(response.cookies[COOKIE_NAME])
        assert identity.username == "operator"
        assert identity.user_role == UserRole.BUS_OPERATOR
        assert identity.email == "operator@bustrack.com"

        assert events[-1]["_username"] == "operator"
        assert events[-1]["_app_id"] == 1

    def test_wrong_password(self, anonymous_client, operator):
        """Test a wrong password is refused without a cookie."""
        response = anonymous_client.post(
            SIGN_IN, data={"username": "operator", "password": "wrong-password"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["X-Error"] == "InvalidCredentials"
        assert COOKIE_NAME not in response.cookies

    def test_unknown_user(self, anonymous_client):
        """Test an unknown username is reported like a wrong password."""
        response = anonymous_client.post(
            SIGN_IN, data={"username": "ghost", "password": PASSWORD}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["X-Error"] == "InvalidCredentials"

    def test_disabled_account(self, anonymous_client, session):
        """Test a disabled account cannot sign in."""
        addUser(session, "retired", UserRole.BUS_OPERATOR, status=False)

        response = anonymous_client.post(
            SIGN_IN, data={"username": "retired", "password": PASSWORD}
        )

        assert response.status_code == status.HTTP_412_PRECONDITION_FAILED
        assert response.headers["X-Error"] == "InactiveAccount"

    def test_missing_field(self, anonymous_client):
        """Test a missing password is a validation error."""
        response = anonymous_client.post(SIGN_IN, data={"username": "operator"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestSignOut:
    """Test the sign out endpoint."""

    def test_sign_out_clears_cookie(self, operator_client):
        response = operator_client.delete(SIGN_IN)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"message": "User signed out"}
        setCookie = response.headers["set-cookie"].lower()
        assert setCookie.startswith(f"{COOKIE_NAME}=")
        assert "max-age=0" in setCookie


class TestPasswordReset:
    """Test the password reset endpoint."""

    def test_password_reset(self, anonymous_client, operator, session, events):
        """Test the new password is stored hashed and the old one stops working."""
        response = anonymous_client.patch(
            "/auth" + URL_PASSWORD,
            data={
                "username": "operator",
                "previous_password": PASSWORD,
                "password": "new-password",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"message": "Password updated"}

        session.refresh(operator)
        assert operator.password != "new-password"
        assert argon2.checkPassword("new-password", operator.password)
        assert not argon2.checkPassword(PASSWORD, operator.password)

        # The password never reaches the audit log
        assert all("password" not in event for event in events)

    def test_wrong_previous_password(self, anonymous_client, operator, session):
        response = anonymous_client.patch(
            "/auth" + URL_PASSWORD,
            data={
                "username": "operator",
                "previous_password": "wrong-password",
                "password": "new-password",
            },
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        session.refresh(operator)
        assert argon2.checkPassword(PASSWORD, operator.password)

    def test_short_password(self, anonymous_client, operator):
        """Test the new password must be at least six characters long."""
        response = anonymous_client.patch(
            "/auth" + URL_PASSWORD,
            data={
                "username": "operator",
                "previous_password": PASSWORD,
                "password": "abc",
            },
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestStateToken:
    """Test state token validation on protected endpoints."""

    def test_token_round_trip(self, operator):
        identity = readToken(makeToken(operator))

        assert identity.username == operator.username
        assert identity.user_role == UserRole.BUS_OPERATOR
        assert identity.first_name == operator.first_name
        assert identity.nic == operator.nic

    def test_payload_keys(self, operator):
        """Test the payload carries the camelCase identity claims."""
        payload = pyjwt.decode(
            makeToken(operator), JWT_SECRET, algorithms=[JWT_ALGORITHM]
        )

        for key in ["userName", "userRole", "firstName", "lastName", "email", "nic"]:
            assert key in payload
        assert "password" not in payload
        assert payload["exp"] > payload["iat"]

    def test_missing_cookie(self, anonymous_client):
        response = anonymous_client.get("/admin/route")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["X-Error"] == "InvalidToken"

    def test_expired_token(self, admin):
        client = clientFor()
        client.cookies.set(COOKIE_NAME, makeToken(admin, validity=-60))

        response = client.get("/admin/route")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_tampered_token(self, admin):
        """Test a token signed with another secret is refused."""
        now = datetime.now(timezone.utc)
        forged = pyjwt.encode(
            {
                "userName": "admin",
                "userRole": int(UserRole.ADMIN),
                "iat": now,
                "exp": now + timedelta(hours=1),
            },
            "not-the-secret",
            algorithm=JWT_ALGORITHM,
        )
        client = clientFor()
        client.cookies.set(COOKIE_NAME, forged)

        response = client.get("/admin/route")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_malformed_payload(self):
        """Test a correctly signed token without a role is refused."""
        now = datetime.now(timezone.utc)
        token = pyjwt.encode(
            {"userName": "admin", "iat": now, "exp": now + timedelta(hours=1)},
            JWT_SECRET,
            algorithm=JWT_ALGORITHM,
        )
        assert readToken(token) is None

        client = clientFor()
        client.cookies.set(COOKIE_NAME, token)
        response = client.get("/admin/route")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_garbage_token(self):
        assert readToken("not-a-token") is None

    def test_operator_on_admin_app(self, operator_client):
        """Test a valid identity of the wrong role is forbidden, not unauthorized."""
        response = operator_client.get("/admin/route")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.headers["X-Error"] == "NoPermission"

    def test_admin_on_operator_app(self, admin_client):
        response = admin_client.post(
            "/operator/bus",
            data={"bus_id": "B1", "bus_number": "N1", "route_id": "R1"},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
