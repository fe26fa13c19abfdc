# security.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import InsufficientRole, InvalidSession, Unauthenticated
from models import Role


def make_password_context(rounds: int = 12) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


@dataclass(frozen=True)
class SessionAssertion:
    account_id: int
    username: str
    role: Role
    expires_at: datetime


class SessionTokens:
    """
    Issues and verifies signed, time-limited session tokens.

    The token carries everything needed to authorize a request
    (id, username, role), so verification never touches the database.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expires_in: timedelta = timedelta(hours=1)):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_in = expires_in

    def issue(self, account_id: int, username: str, role: Role) -> Tuple[SessionAssertion, str]:
        now = datetime.now(timezone.utc)
        expire = now + self.expires_in
        payload = {
            "sub": username,
            "uid": account_id,
            "role": Role(role).value,
            "iat": now,
            "exp": expire,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return SessionAssertion(account_id, username, Role(role), expire), token

    def verify(self, token: Optional[str]) -> SessionAssertion:
        if not token:
            raise Unauthenticated()
        try:
            jwt.get_unverified_header(token)
        except JWTError:
            raise Unauthenticated()

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            # bad signature or expired
            raise InvalidSession()

        username = payload.get("sub")
        account_id = payload.get("uid")
        exp = payload.get("exp")
        if not username or not isinstance(account_id, int) or exp is None:
            raise InvalidSession()
        try:
            role = Role(payload.get("role"))
        except ValueError:
            raise InvalidSession()
        return SessionAssertion(
            account_id=account_id,
            username=username,
            role=role,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )


def authorize(assertion: SessionAssertion, required_roles: Iterable[Role]) -> SessionAssertion:
    """Role membership check. Call only with an already verified assertion."""
    if assertion.role not in frozenset(required_roles):
        raise InsufficientRole()
    return assertion
