from __future__ import annotations
import datetime
import logging
import secrets

from passlib.context import CryptContext

from db import (
    UserRepository,
    AuthSessionRepository,
    ProfileRepository,
    SettingsRepository,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:
    """Sign-up, sign-in and token lookup backed by the local database."""

    MIN_PASSWORD_LENGTH = 6

    def __init__(
        self,
        user_repo: UserRepository,
        session_repo: AuthSessionRepository,
        profile_repo: ProfileRepository,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.users = user_repo
        self.sessions = session_repo
        self.profiles = profile_repo
        self.settings = settings_repo

    def _pepper(self) -> str:
        if self.settings is None:
            return ""
        return self.settings.get_text("password_pepper", "")

    def _secret(self, password: str) -> bytes:
        # bcrypt hard limit: 72 bytes
        return (password + self._pepper()).encode("utf-8")[:72]

    def _hash(self, password: str) -> str:
        return pwd_context.hash(self._secret(password))

    def _verify(self, password: str, stored: str) -> bool:
        if not stored:
            return False
        try:
            return pwd_context.verify(self._secret(password), stored)
        except ValueError:
            logger.warning("unrecognised password hash format")
            return False

    def sign_up(self, email: str, password: str, name: str | None = None) -> int:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValueError("invalid email")
        if len(password or "") < self.MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"password must be at least {self.MIN_PASSWORD_LENGTH} characters"
            )
        user_id = self.users.create(email, self._hash(password))
        self.profiles.ensure(user_id, email, name or email.split("@")[0])
        logger.info("registered user %s", user_id)
        return user_id

    def sign_in(self, email: str, password: str) -> str:
        row = self.users.fetch_by_email(email or "")
        if row is None or not self._verify(password or "", row[2]):
            logger.info("failed sign-in for %s", email)
            raise ValueError("invalid credentials")
        ttl = 30
        if self.settings is not None:
            ttl = self.settings.get_int("session_ttl_days", 30)
        expires = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=ttl)
        token = secrets.token_urlsafe(32)
        self.sessions.delete_expired()
        self.sessions.add(token, int(row[0]), expires.isoformat())
        return token

    def sign_out(self, token: str) -> None:
        self.sessions.delete(token)

    def current_user(self, token: str | None) -> dict | None:
        if not token:
            return None
        user_id = self.sessions.fetch_user_id(token)
        if user_id is None:
            return None
        try:
            uid, email = self.users.fetch_detail(user_id)
        except ValueError:
            return None
        try:
            name = self.profiles.fetch(uid)["name"]
        except ValueError:
            name = None
        return {"id": uid, "email": email, "name": name}
