"""Tests for session authorization and local accounts."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from beadshop.accounts import AccountStore
from beadshop.auth import Actor, JWTSessionAuthorizer, parse_bearer, require_role
from beadshop.errors import AuthenticationError, PermissionDeniedError, ValidationError
from beadshop.models import Role

from conftest import AUTH_KEY, make_token


@pytest.fixture
def authorizer():
    return JWTSessionAuthorizer(AUTH_KEY)


@pytest.fixture
def accounts(temp_dir):
    return AccountStore(temp_dir)


class TestParseBearer:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc", "abc"),
            ("Bearer  abc ", "abc"),
            ("Bearer ", None),
            ("Token abc", None),
            (None, None),
        ],
    )
    def test_parse(self, header, expected):
        assert parse_bearer(header) == expected


class TestAuthenticate:
    def test_role_claim(self, authorizer):
        actor = authorizer.authenticate(
            f"Bearer {make_token('user_1', 'admin', 'a@example.com')}"
        )
        assert actor == Actor(user_id="user_1", role=Role.ADMIN, email="a@example.com")

    def test_metadata_role(self, authorizer):
        token = jwt.encode({"sub": "user_2", "metadata": {"role": "owner"}}, AUTH_KEY, "HS256")
        assert authorizer.authenticate(f"Bearer {token}").role == Role.OWNER

    def test_defaults_to_customer(self, authorizer):
        assert authorizer.authenticate(f"Bearer {make_token('user_3')}").role == Role.CUSTOMER

    def test_unknown_role_is_customer(self, authorizer):
        token = make_token("user_4", role="superuser")
        assert authorizer.authenticate(f"Bearer {token}").role == Role.CUSTOMER

    def test_missing_header(self, authorizer):
        with pytest.raises(AuthenticationError, match="Unauthorized"):
            authorizer.authenticate(None)

    def test_wrong_key(self, authorizer):
        token = jwt.encode({"sub": "user_1"}, "another-key", "HS256")
        with pytest.raises(AuthenticationError, match="Unauthorized"):
            authorizer.authenticate(f"Bearer {token}")

    def test_expired(self, authorizer):
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = jwt.encode({"sub": "user_1", "exp": past}, AUTH_KEY, "HS256")
        with pytest.raises(AuthenticationError, match="Session expired"):
            authorizer.authenticate(f"Bearer {token}")

    def test_subject_required(self, authorizer):
        token = jwt.encode({"email": "x@example.com"}, AUTH_KEY, "HS256")
        with pytest.raises(AuthenticationError):
            authorizer.authenticate(f"Bearer {token}")


class TestRequireRole:
    def test_allowed(self, admin):
        assert require_role(admin, Role.ADMIN) is admin

    def test_admin_required_message(self, customer):
        with pytest.raises(PermissionDeniedError, match="Admin access required"):
            require_role(customer, Role.ADMIN)

    def test_listed_roles_message(self, customer):
        with pytest.raises(PermissionDeniedError, match="Required: admin, owner"):
            require_role(customer, Role.ADMIN, Role.OWNER)


class TestAccounts:
    def test_ensure_user_creates_profile(self, accounts, customer):
        user = accounts.ensure_user(customer)
        assert user.clerk_id == customer.user_id
        assert user.email == customer.email
        assert accounts.get_user(customer.user_id).role == Role.CUSTOMER

    def test_pending_assignment_applied_once(self, accounts, customer):
        accounts.assign_role("  JANE@example.com ", Role.ADMIN, assigned_by="owner@example.com")

        user = accounts.ensure_user(customer)

        assert user.role == Role.ADMIN
        assignment = accounts.get_assignment(customer.email)
        assert assignment.processed is True
        assert assignment.processed_at is not None

    def test_assignment_replaced(self, accounts):
        accounts.assign_role("bo@example.com", Role.ADMIN, assigned_by="cli")
        accounts.assign_role("bo@example.com", Role.OWNER, assigned_by="cli")
        assignments = accounts.list_assignments()
        assert [(a.email, a.assigned_role) for a in assignments] == [
            ("bo@example.com", Role.OWNER)
        ]

    @pytest.mark.parametrize("email", ["nobody", "@example.com", "bo@"])
    def test_invalid_email(self, accounts, email):
        with pytest.raises(ValidationError, match="Invalid email address"):
            accounts.assign_role(email, Role.ADMIN, assigned_by="cli")

    def test_save_shipping_address(self, accounts, customer, address):
        accounts.save_shipping_address(customer, address)
        assert accounts.get_user(customer.user_id).shipping_address == address
