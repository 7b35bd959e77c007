"""
Create a user (e.g. first admin). Run from project root:
  python -m app.scripts.create_user NAME EMAIL PASSWORD [role]
Example:
  python -m app.scripts.create_user "Ana Admin" ana@voluntarios.org your-secure-password ADMIN
"""
import argparse
import logging
import sys

from app.core.config import get_settings
from app.core.database import Store
from app.schemas.auth import Identity
from app.services.errors import ResolverError
from app.services.users import create_user

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

# Acts as an administrator so the requested role is honored.
PROVISIONER = Identity(id="0", email="provisioning@localhost", name="provisioning", role="ADMIN")


def main(argv: list[str] | None = None, store: Store | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a Voluntariado user (admin provisioning).")
    parser.add_argument("name", help="Display name (1-255 chars)")
    parser.add_argument("email", help="Email address, unique across users")
    parser.add_argument("password", help="Password (1-128 chars)")
    parser.add_argument("role", nargs="?", default="USER", type=str.upper, choices=["USER", "ADMIN"])
    args = parser.parse_args(argv)

    owns_store = store is None
    if store is None:
        settings = get_settings()
        store = Store(settings.DATABASE_URL).open()
        if settings.AUTO_CREATE_SCHEMA:
            store.create_schema()
    try:
        user = create_user(
            store,
            PROVISIONER,
            name=args.name,
            email=args.email,
            password=args.password,
            role=args.role,
        )
    except ResolverError as e:
        print(e.message, file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("User creation failed: %s", e)
        return 1
    finally:
        if owns_store:
            store.close()
    print(f"Created user '{user.email}' with role '{user.role}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
