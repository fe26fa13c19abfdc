# accounts.py
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

import databases
from passlib.context import CryptContext

from activity import SYSTEM_ACTOR, ActivityRecorder
from errors import DuplicateUsername, InvalidCredentials, InvalidRole, is_unique_violation
from models import ActionKind, Role, User
from schemas import Account
from security import SessionAssertion, SessionTokens

logger = logging.getLogger(__name__)

users = User.__table__


def parse_role(value) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise InvalidRole()


class Authenticator:
    """Credential store access: login, admin-driven registration, bootstrap."""

    def __init__(
        self,
        database: databases.Database,
        pwd_context: CryptContext,
        tokens: SessionTokens,
        recorder: ActivityRecorder,
    ):
        self.database = database
        self.pwd_context = pwd_context
        self.tokens = tokens
        self.recorder = recorder

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    async def get_account_row(self, username: str):
        return await self.database.fetch_one(users.select().where(users.c.username == username))

    async def login(self, username: str, password: str) -> Tuple[SessionAssertion, str]:
        row = await self.get_account_row(username)
        if row is None:
            # Same bcrypt cost whether or not the account exists
            self.pwd_context.dummy_verify()
            logger.warning("Login failed for unknown user %r", username)
            raise InvalidCredentials()
        if not self.pwd_context.verify(password, row["hashed_password"]):
            logger.warning("Login failed for user %r", username)
            raise InvalidCredentials()
        return self.tokens.issue(row["id"], row["username"], Role(row["role"]))

    async def _insert_account(self, username: str, password: str, role: Role) -> Account:
        query = (
            users.insert()
            .values(
                username=username,
                hashed_password=self.hash_password(password),
                role=role.value,
                created_at=datetime.now(timezone.utc),
            )
            .returning(users.c.id, users.c.username, users.c.role)
        )
        # Uniqueness is left to the constraint; no read-then-write check.
        try:
            row = await self.database.fetch_one(query)
        except Exception as exc:
            if is_unique_violation(exc):
                raise DuplicateUsername() from exc
            raise
        return Account(id=row["id"], username=row["username"], role=row["role"])

    async def register(self, requester: SessionAssertion, username: str, password: str, role) -> Account:
        """
        Create an account. The caller must already be authorized as admin;
        that check lives in the router, not here.
        """
        new_role = parse_role(role)
        account = await self._insert_account(username, password, new_role)

        await self.recorder.record(
            requester.account_id, requester.username, ActionKind.USER_CREATED,
            f"Admin created new user: {account.username} with role {account.role.value}",
        )
        return account

    async def ensure_admin(self, username: Optional[str], password: Optional[str]) -> Optional[Account]:
        """Create the first admin if it does not exist yet. Safe to call on every start."""
        if not username or not password:
            return None
        try:
            account = await self._insert_account(username, password, Role.ADMIN)
        except DuplicateUsername:
            return None

        logger.info("Bootstrapped admin account %r", username)
        await self.recorder.record(
            None, SYSTEM_ACTOR, ActionKind.USER_CREATED,
            f"System created bootstrap admin: {account.username}",
        )
        return account
