"""Account storage and token handling for the web API.

Accounts live in an in-memory :class:`AccountRepository`. Credit
consumption goes through a compare-and-swap so concurrent requests from the
same account can never spend the same credit twice.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from ...util.config import ServiceConfig

LOGGER = logging.getLogger(__name__)

_ALGORITHM = "HS256"


class AccountExistsError(ValueError):
    """Raised on signup with an email that is already registered."""


class InvalidCredentialsError(ValueError):
    """Raised when an email/password pair does not match."""


class InvalidTokenError(ValueError):
    """Raised for missing, malformed or expired bearer tokens."""


class AccountNotFoundError(LookupError):
    """Raised when a valid token names an account that no longer exists."""


class NoCreditsError(RuntimeError):
    """The account has no free tracks left and no active subscription."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account:
    id: str
    email: str
    password_hash: str
    free_tracks_left: int
    subscription_status: str = "none"
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def has_active_subscription(self) -> bool:
        return self.subscription_status == "active"

    def can_process(self) -> bool:
        return self.has_active_subscription or self.free_tracks_left > 0

    def public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "freeTracksLeft": self.free_tracks_left,
            "subscription": {"status": self.subscription_status},
        }


class AccountRepository:
    """Thread-safe in-memory account store keyed by email and id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_email: dict[str, Account] = {}
        self._by_id: dict[str, Account] = {}

    def get_by_email(self, email: str) -> Optional[Account]:
        with self._lock:
            account = self._by_email.get(email.casefold())
            return replace(account) if account else None

    def get_by_id(self, account_id: str) -> Optional[Account]:
        with self._lock:
            account = self._by_id.get(account_id)
            return replace(account) if account else None

    def insert(self, account: Account) -> Account:
        key = account.email.casefold()
        with self._lock:
            if key in self._by_email:
                raise AccountExistsError(f"User {account.email} already exists")
            stored = replace(account)
            self._by_email[key] = stored
            self._by_id[stored.id] = stored
        return replace(stored)

    def set_subscription(self, account_id: str, status: str) -> None:
        with self._lock:
            account = self._by_id.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            account.subscription_status = status

    def compare_and_set_credits(self, account_id: str, expected: int, new: int) -> bool:
        with self._lock:
            account = self._by_id.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if account.free_tracks_left != expected:
                return False
            account.free_tracks_left = new
            return True

    def consume_credit(self, account_id: str) -> int:
        """Spend one free track and return how many remain.

        Raises :class:`NoCreditsError` once the balance is exhausted.
        """

        while True:
            current = self.get_by_id(account_id)
            if current is None:
                raise AccountNotFoundError(account_id)
            if current.free_tracks_left <= 0:
                raise NoCreditsError("No credits remaining")
            remaining = current.free_tracks_left - 1
            if self.compare_and_set_credits(account_id, current.free_tracks_left, remaining):
                return remaining


class AuthService:
    """Signup, login and bearer-token resolution."""

    def __init__(self, repository: AccountRepository, config: ServiceConfig) -> None:
        self._repository = repository
        self._config = config
        self._passwords = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=config.bcrypt_rounds,
        )

    @property
    def repository(self) -> AccountRepository:
        return self._repository

    def issue_token(self, account: Account) -> str:
        expire = _utc_now() + timedelta(seconds=self._config.token_ttl_seconds)
        payload = {"sub": account.id, "userId": account.id, "exp": expire}
        return jwt.encode(payload, self._config.jwt_secret, algorithm=_ALGORITHM)

    def signup(self, email: str, password: str) -> tuple[Account, str]:
        account = Account(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=self._passwords.hash(password),
            free_tracks_left=self._config.free_tracks,
        )
        stored = self._repository.insert(account)
        LOGGER.info("Registered account %s", stored.id)
        return stored, self.issue_token(stored)

    def login(self, email: str, password: str) -> tuple[Account, str]:
        account = self._repository.get_by_email(email)
        if account is None or not self._passwords.verify(password, account.password_hash):
            raise InvalidCredentialsError("Invalid credentials")
        return account, self.issue_token(account)

    def resolve_token(self, token: Optional[str]) -> Account:
        if not token:
            raise InvalidTokenError("No token")
        try:
            payload = jwt.decode(token, self._config.jwt_secret, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidTokenError("Invalid token") from exc
        account_id = payload.get("sub") or payload.get("userId")
        if not account_id:
            raise InvalidTokenError("Invalid token")
        account = self._repository.get_by_id(str(account_id))
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account


__all__ = [
    "Account",
    "AccountExistsError",
    "AccountNotFoundError",
    "AccountRepository",
    "AuthService",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "NoCreditsError",
]
