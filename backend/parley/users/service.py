"""UserService: DuckDB-backed user profile records."""
import asyncio
import logging
import time
from typing import List, Optional

import duckdb

from parley.errors import Conflict
from parley.storage import Database

from .hashing import PasswordHasher
from .schemas import Address, UserCreate, UserProfile

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    email         VARCHAR PRIMARY KEY,
    first_name    VARCHAR,
    last_name     VARCHAR,
    mobile        VARCHAR,
    street        VARCHAR,
    city          VARCHAR,
    state         VARCHAR,
    country       VARCHAR,
    login_id      VARCHAR,
    password_hash VARCHAR,
    created_at    DOUBLE NOT NULL,
    updated_at    DOUBLE NOT NULL
)
"""

_PROFILE_COLUMNS = (
    "email, first_name, last_name, mobile, street, city, state, country, "
    "login_id, created_at, updated_at"
)


class UserService:
    """Stores user profiles keyed by email.

    Passwords are hashed with the injected ``PasswordHasher`` before they
    reach the database and are never returned.
    """

    def __init__(self, db: Database, hasher: PasswordHasher) -> None:
        self._db = db
        self._hasher = hasher
        self._db.initialize([_CREATE_TABLE])

    # -----------------------------------------------------------------------
    # CRUD
    # -----------------------------------------------------------------------

    async def save(self, user: UserCreate) -> UserProfile:
        """Create a profile.

        Raises:
            Conflict: A profile with the same email already exists.
        """
        password_hash = None
        if user.password:
            # Key derivation is CPU-bound; keep it off the event loop
            password_hash = await asyncio.to_thread(self._hasher.hash, user.password)
        profile = await self._db.run(self._insert, user, password_hash)
        logger.info("[users] Saved profile %s", profile.email)
        return profile

    async def list_users(self) -> List[UserProfile]:
        return await self._db.run(self._list)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _insert(
        self,
        conn: duckdb.DuckDBPyConnection,
        user: UserCreate,
        password_hash: Optional[str],
    ) -> UserProfile:
        if conn.execute("SELECT 1 FROM users WHERE email = ?", [user.email]).fetchone():
            raise Conflict(f"User {user.email} already exists")

        address = user.address or Address()
        now = time.time()
        conn.execute(
            """
            INSERT INTO users
              (email, first_name, last_name, mobile, street, city, state,
               country, login_id, password_hash, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                user.email, user.firstName, user.lastName, user.mobile,
                address.street, address.city, address.state, address.country,
                user.loginId, password_hash, now, now,
            ],
        )
        return self._get(conn, user.email)

    def _list(self, conn: duckdb.DuckDBPyConnection) -> List[UserProfile]:
        rows = conn.execute(
            f"SELECT {_PROFILE_COLUMNS} FROM users ORDER BY created_at ASC"
        ).fetchall()
        return [self._row_to_profile(r) for r in rows]

    def _get(self, conn: duckdb.DuckDBPyConnection, email: str) -> Optional[UserProfile]:
        row = conn.execute(
            f"SELECT {_PROFILE_COLUMNS} FROM users WHERE email = ?", [email]
        ).fetchone()
        return self._row_to_profile(row) if row else None

    @staticmethod
    def _row_to_profile(row) -> UserProfile:
        (email, first_name, last_name, mobile, street, city, state, country,
         login_id, created_at, updated_at) = row
        return UserProfile(
            email=email,
            firstName=first_name,
            lastName=last_name,
            mobile=mobile,
            address=Address(street=street, city=city, state=state, country=country),
            loginId=login_id,
            createdAt=created_at,
            updatedAt=updated_at,
        )
