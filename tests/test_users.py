"""Tests for app.services.users against an in-memory SQLite store."""

import unittest

from app.core.config import settings
from app.core.database import Store, normalize_url
from app.core.security import decode_access_token
from app.schemas.auth import Identity, UserPublic
from app.services import users
from app.services.errors import (
    DuplicateEmail,
    FieldTooLong,
    Forbidden,
    IndexOutOfRange,
    InvalidCredentials,
    InvalidEmail,
    MissingFields,
    Unauthorized,
)

ADMIN = Identity(id="100", email="admin@voluntarios.org", name="Admin", role="ADMIN")


def setUpModule() -> None:
    # Cheap hashes keep the suite fast.
    settings.BCRYPT_ROUNDS = 4


def _store() -> Store:
    store = Store("sqlite://").open()
    store.create_schema()
    return store


def _as_identity(user: UserPublic) -> Identity:
    return Identity(id=user.id, email=user.email, name=user.name, role=user.role)


class UserStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = _store()
        self.addCleanup(self.store.close)

    def register(self, email: str, name: str = "Someone", password: str = "pass-1234", **kwargs: object):
        return users.create_user(self.store, kwargs.pop("caller", None), name, email, password, **kwargs)


class TestRegistrationAndLogin(UserStoreTestCase):
    """createUser then login; duplicate emails are rejected."""

    def test_register_then_login(self) -> None:
        created = self.register("ana@voluntarios.org", name="Ana")
        self.assertEqual(created.role, "USER")

        result = users.login(self.store, "ana@voluntarios.org", "pass-1234")
        self.assertEqual(result.user.id, created.id)
        claims = decode_access_token(result.token)
        self.assertEqual(claims["sub"], created.id)
        self.assertEqual(claims["email"], "ana@voluntarios.org")
        self.assertEqual(claims["role"], "USER")

    def test_email_is_case_insensitive(self) -> None:
        created = self.register("  Ana@Voluntarios.ORG ")
        self.assertEqual(created.email, "ana@voluntarios.org")
        users.login(self.store, "ANA@voluntarios.org", "pass-1234")
        with self.assertRaises(DuplicateEmail):
            self.register("ana@VOLUNTARIOS.org")

    def test_second_registration_with_same_email_fails(self) -> None:
        self.register("ana@voluntarios.org")
        with self.assertRaises(DuplicateEmail):
            self.register("ana@voluntarios.org", name="Other")
        self.assertEqual(len(self.store.list_users()), 1)

    def test_missing_fields(self) -> None:
        with self.assertRaises(MissingFields) as ctx:
            users.create_user(self.store, None, "", "ana@voluntarios.org", "")
        self.assertEqual(ctx.exception.fields, ["name", "password"])
        self.assertEqual(self.store.list_users(), [])

    def test_over_long_name_and_password(self) -> None:
        with self.assertRaises(FieldTooLong) as ctx:
            self.register("ana@voluntarios.org", name="n" * 256, password="p" * 129)
        self.assertEqual(ctx.exception.fields, ["name", "password"])
        self.assertEqual(ctx.exception.code, "FIELD_TOO_LONG")
        self.assertEqual(self.store.list_users(), [])

    def test_invalid_email_format(self) -> None:
        with self.assertRaises(InvalidEmail):
            self.register("not-an-email")

    def test_password_is_hashed(self) -> None:
        self.register("ana@voluntarios.org")
        stored = self.store.get_user_by_email("ana@voluntarios.org")
        self.assertNotEqual(stored.password_hash, "pass-1234")
        self.assertTrue(stored.password_hash.startswith("$2"))

    def test_role_forced_to_user_for_public_registration(self) -> None:
        created = self.register("ana@voluntarios.org", role="ADMIN")
        self.assertEqual(created.role, "USER")

    def test_admin_may_provision_admin(self) -> None:
        created = self.register("root@voluntarios.org", caller=ADMIN, role="ADMIN")
        self.assertEqual(created.role, "ADMIN")


class TestInvalidCredentials(UserStoreTestCase):
    """Unknown email and wrong password fail identically."""

    def test_same_error_text(self) -> None:
        self.register("real@voluntarios.org")
        with self.assertRaises(InvalidCredentials) as unknown:
            users.login(self.store, "nonexistent@x.com", "whatever")
        with self.assertRaises(InvalidCredentials) as wrong:
            users.login(self.store, "real@voluntarios.org", "wrongpass")
        self.assertEqual(unknown.exception.message, wrong.exception.message)
        self.assertEqual(unknown.exception.code, wrong.exception.code)

    def test_empty_email(self) -> None:
        with self.assertRaises(InvalidCredentials):
            users.login(self.store, "", "whatever")


class TestUserQueries(UserStoreTestCase):
    """listUsers and getUserByEmail access rules and output shape."""

    def setUp(self) -> None:
        super().setUp()
        self.ana = _as_identity(self.register("ana@voluntarios.org", name="Ana"))
        self.register("bea@voluntarios.org", name="Bea")

    def test_list_users_admin_only(self) -> None:
        with self.assertRaises(Forbidden):
            users.list_users(self.store, self.ana)
        with self.assertRaises(Unauthorized):
            users.list_users(self.store, None)
        listed = users.list_users(self.store, ADMIN)
        self.assertEqual([u.email for u in listed], ["ana@voluntarios.org", "bea@voluntarios.org"])
        for user in listed:
            self.assertNotIn("password_hash", user.model_dump())

    def test_get_user_by_email(self) -> None:
        own = users.get_user_by_email(self.store, self.ana, "ana@voluntarios.org")
        self.assertEqual(own.name, "Ana")
        with self.assertRaises(Forbidden):
            users.get_user_by_email(self.store, self.ana, "bea@voluntarios.org")
        self.assertIsNone(users.get_user_by_email(self.store, ADMIN, "nobody@voluntarios.org"))


class TestUserDeletion(UserStoreTestCase):
    """Deletion by email is idempotent; deletion by index fails closed."""

    def test_delete_by_email(self) -> None:
        self.register("ana@voluntarios.org")
        self.assertTrue(users.delete_user_by_email(self.store, ADMIN, "ana@voluntarios.org"))
        self.assertFalse(users.delete_user_by_email(self.store, ADMIN, "ana@voluntarios.org"))
        self.assertIsNone(self.store.get_user_by_email("ana@voluntarios.org"))

    def test_delete_by_email_requires_admin(self) -> None:
        ana = _as_identity(self.register("ana@voluntarios.org"))
        with self.assertRaises(Forbidden):
            users.delete_user_by_email(self.store, ana, "ana@voluntarios.org")
        with self.assertRaises(Unauthorized):
            users.delete_user_by_email(self.store, None, "ana@voluntarios.org")
        self.assertIsNotNone(self.store.get_user_by_email("ana@voluntarios.org"))

    def test_delete_by_index_out_of_range_on_empty_listing(self) -> None:
        for index in (0, -1):
            with self.subTest(index=index):
                with self.assertRaises(IndexOutOfRange):
                    users.delete_user_by_index(self.store, ADMIN, index)

    def test_delete_by_index_bounds(self) -> None:
        self.register("ana@voluntarios.org")
        self.register("bea@voluntarios.org")
        for index in (2, -1, True):
            with self.subTest(index=index):
                with self.assertRaises(IndexOutOfRange):
                    users.delete_user_by_index(self.store, ADMIN, index)
        self.assertEqual(len(self.store.list_users()), 2)

    def test_delete_by_index_removes_that_position(self) -> None:
        self.register("ana@voluntarios.org")
        self.register("bea@voluntarios.org")
        self.register("cris@voluntarios.org")
        self.assertTrue(users.delete_user_by_index(self.store, ADMIN, 1))
        remaining = [u.email for u in self.store.list_users()]
        self.assertEqual(remaining, ["ana@voluntarios.org", "cris@voluntarios.org"])

    def test_delete_by_index_requires_admin(self) -> None:
        ana = _as_identity(self.register("ana@voluntarios.org"))
        with self.assertRaises(Forbidden):
            users.delete_user_by_index(self.store, ana, 0)


class TestStoreUrl(unittest.TestCase):
    def test_short_postgres_scheme_is_accepted(self) -> None:
        self.assertEqual(normalize_url("postgres://u:p@db/v"), "postgresql://u:p@db/v")
        self.assertEqual(normalize_url("postgres+psycopg2://db/v"), "postgresql+psycopg2://db/v")
        self.assertEqual(normalize_url("sqlite://"), "sqlite://")

    def test_unknown_ids_are_not_found(self) -> None:
        store = _store()
        self.addCleanup(store.close)
        for raw in ("abc", "", True):
            with self.subTest(raw=raw):
                self.assertIsNone(store.get_posting(raw))


if __name__ == "__main__":
    unittest.main()
