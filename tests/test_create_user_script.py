"""Tests for the admin provisioning command."""

import io
import unittest
from contextlib import redirect_stderr, redirect_stdout

from app.core.config import settings
from app.core.database import Store
from app.scripts.create_user import main


def setUpModule() -> None:
    settings.BCRYPT_ROUNDS = 4


class TestCreateUserScript(unittest.TestCase):
    def setUp(self) -> None:
        self.store = Store("sqlite://").open()
        self.store.create_schema()
        self.addCleanup(self.store.close)

    def run_main(self, *argv: str) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(list(argv), store=self.store)
        return code, out.getvalue(), err.getvalue()

    def test_creates_admin(self) -> None:
        code, out, _ = self.run_main("Ana Admin", "Ana@Voluntarios.org", "secret-pass", "admin")
        self.assertEqual(code, 0)
        self.assertIn("ana@voluntarios.org", out)
        self.assertEqual(self.store.get_user_by_email("ana@voluntarios.org").role, "ADMIN")

    def test_role_defaults_to_user(self) -> None:
        self.assertEqual(self.run_main("Bea", "bea@voluntarios.org", "secret-pass")[0], 0)
        self.assertEqual(self.store.get_user_by_email("bea@voluntarios.org").role, "USER")

    def test_duplicate_email_exits_with_error(self) -> None:
        self.run_main("Ana", "ana@voluntarios.org", "secret-pass")
        code, _, err = self.run_main("Ana", "ana@voluntarios.org", "other-pass")
        self.assertEqual(code, 1)
        self.assertIn("already exists", err)
        self.assertEqual(len(self.store.list_users()), 1)


if __name__ == "__main__":
    unittest.main()
