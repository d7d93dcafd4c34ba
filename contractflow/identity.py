"""
Identity Provider
User registration, login and bearer-token resolution.

Tokens are opaque random strings stored server-side with an expiry; the
workflow core only ever sees the resolved Actor.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

import bcrypt
from sqlalchemy import Engine
from sqlmodel import Session, select

from .config import settings
from .errors import AuthenticationError, ValidationError
from .models import Actor, SessionTable, UserTable
from .util.clock import Clock, iso, utcnow
from .util.ids import new_id

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


class IdentityProvider:
    """Issues and validates session credentials"""

    def __init__(self, engine: Engine, clock: Clock = utcnow, session_ttl_hours: Optional[int] = None):
        self.engine = engine
        self.clock = clock
        self.session_ttl = timedelta(
            hours=session_ttl_hours if session_ttl_hours is not None else settings.session_ttl_hours
        )

    def register(self, name: str, email: str, password: str) -> Actor:
        """
        Create a user account.

        Raises:
            ValidationError: blank name/email/password or email already taken.
        """
        email = (email or "").strip().lower()
        details = []
        if not name or not name.strip():
            details.append({"path": "name", "msg": "must not be blank"})
        if not email:
            details.append({"path": "email", "msg": "must not be blank"})
        if not password:
            details.append({"path": "password", "msg": "must not be blank"})
        elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            details.append({"path": "password", "msg": f"must be at most {MAX_PASSWORD_BYTES} bytes"})
        if details:
            raise ValidationError("Invalid registration", details)

        with Session(self.engine) as session:
            existing = session.exec(select(UserTable).where(UserTable.email == email)).first()
            if existing:
                raise ValidationError("User already exists", [{"path": "email", "msg": "already registered"}])

            user = UserTable(
                id=new_id("usr_"),
                name=name.strip(),
                email=email,
                password_hash=self._hash_password(password),
                created_at=iso(self.clock()),
            )
            session.add(user)
            session.commit()
            logger.info("Registered new user %s", user.id)
            return Actor(id=user.id, name=user.name)

    def login(self, email: str, password: str) -> Tuple[str, Actor]:
        """
        Verify credentials and open a session.

        Returns:
            (token, actor)

        Raises:
            AuthenticationError: unknown email or wrong password.
        """
        email = (email or "").strip().lower()
        with Session(self.engine) as session:
            user = session.exec(select(UserTable).where(UserTable.email == email)).first()
            if not user or not self._verify_password(password or "", user.password_hash):
                logger.warning("Authentication failed for %s", email or "<blank>")
                raise AuthenticationError("Invalid credentials")

            now = self.clock()
            token = secrets.token_urlsafe(32)
            session.add(
                SessionTable(
                    token=token,
                    user_id=user.id,
                    created_at=iso(now),
                    expires_at=iso(now + self.session_ttl),
                )
            )
            session.commit()
            logger.info("User %s logged in", user.id)
            return token, Actor(id=user.id, name=user.name)

    def resolve(self, token: Optional[str]) -> Actor:
        """
        Actor behind a bearer token.

        Raises:
            AuthenticationError: missing, unknown or expired token.
        """
        if not token:
            raise AuthenticationError("Unauthorized")

        with Session(self.engine) as session:
            record = session.get(SessionTable, token)
            if record is None:
                raise AuthenticationError("Unauthorized")
            if record.expires_at <= iso(self.clock()):
                session.delete(record)
                session.commit()
                raise AuthenticationError("Session expired")

            user = session.get(UserTable, record.user_id)
            if user is None:
                raise AuthenticationError("Unauthorized")
            return Actor(id=user.id, name=user.name)

    def logout(self, token: str) -> None:
        with Session(self.engine) as session:
            record = session.get(SessionTable, token)
            if record is not None:
                session.delete(record)
                session.commit()

    @staticmethod
    def _hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    @staticmethod
    def _verify_password(password: str, password_hash: str) -> bool:
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
