"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper.
Route and dependency code never touches SQL directly, and no other component
writes account fields.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) is enforced by the database, not only by the pre-check in the
  signup route. Two concurrent signups for the same address both pass the
  route's find_by_email() check; the constraint makes exactly one insert win
  and create() turns the loser's IntegrityError into DuplicateEmail. A row is
  never overwritten.

  Plaintext passwords never reach the table. create() hashes with bcrypt
  before the insert and the raw value is dropped when the call returns.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail
from auth.models import Account, Role, normalize_email
from auth.passwords import DEFAULT_ROUNDS, check_password, hash_password

logger = logging.getLogger("tokengate.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # normalized
    Column("password_hash", Text, nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("role", String(16), nullable=False, server_default=Role.user.value),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a signup write.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Args:
        db_url:        Any SQLAlchemy URL. SQLite gets WAL mode and
                       check_same_thread=False (routes run on a thread pool).
        bcrypt_rounds: Cost factor for new password hashes. Existing hashes
                       carry their own cost and verify regardless.
    """

    def __init__(self, db_url: str, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._bcrypt_rounds = bcrypt_rounds
        # Timing equalization dummy hash [C1]. Same cost as real hashes, so an
        # unknown email costs the same bcrypt work as a wrong password.
        self._dummy_hash = hash_password("tokengate_timing_dummy", rounds=bcrypt_rounds)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def count_accounts(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, email: str, raw_password: str, first_name: str, last_name: str, role: str) -> Account:
        """Hash the password, insert a new account, and return it with its id.

        Raises:
            ValueError:     role is not a known Role. Callers resolve roles
                            through RolePolicy first; this is a last guard.
            DuplicateEmail: an account with this email already exists,
                            including one inserted by a concurrent request
                            after the caller's own pre-check.
        """
        role = Role(role).value
        email = normalize_email(email)
        created_at = _now_iso()
        password_hash = hash_password(raw_password, rounds=self._bcrypt_rounds)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        email=email,
                        password_hash=password_hash,
                        first_name=first_name,
                        last_name=last_name,
                        role=role,
                        created_at=created_at,
                    )
                )
                conn.commit()
                account_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            # UNIQUE(email) is the only constraint a valid insert can trip;
            # confirm before reporting a conflict so other failures propagate.
            if self.find_by_email(email) is None:
                raise
            logger.info("Signup rejected: duplicate email")
            raise DuplicateEmail() from exc

        logger.info("Account created (id=%s, role=%s)", account_id, role)
        return Account(
            id=account_id,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            created_at=created_at,
        )

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def verify_password(self, account: Account, raw_password: str) -> bool:
        """Return True if raw_password matches the account's stored hash.

        Never raises for a wrong password or a corrupt stored hash.
        """
        return check_password(raw_password, account.password_hash)

    def authenticate(self, email: str, raw_password: str) -> Account | None:
        """Authenticate an email/password pair with timing equalization [C1].

        Always runs bcrypt whether or not the account exists:
        - Unknown email: bcrypt runs against the dummy hash (same cost).
        - Wrong password: bcrypt runs against the real hash.

        Returns the Account on success, None on any failure. Callers must not
        distinguish the two failure modes in their response.
        """
        account = self.find_by_email(email)
        if account is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            check_password(raw_password, self._dummy_hash)
            return None
        if not self.verify_password(account, raw_password):
            return None
        return account

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        created_at=row.created_at,
    )
