"""Registration, login and bearer-token verification.

Passwords are hashed with bcrypt through passlib. Session tokens are
HS256 JWTs carrying ``sub`` (the user id), ``username``, ``iat`` and
``exp``. Nothing about a token is stored server side: a token is valid
while its signature checks out and ``exp`` is in the future.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import AuthError, ValidationError
from storage import Storage, User

logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 50
INVALID_CREDENTIALS = "Invalid username or password"
INVALID_TOKEN = "Could not validate credentials"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_password_context(rounds: int = 12) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(pwd_context: CryptContext, password: str) -> str:
    return pwd_context.hash(password)


def verify_password(pwd_context: CryptContext, plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


@dataclass(frozen=True)
class Identity:
    user_id: int
    username: str


class AuthService:
    def __init__(
        self,
        storage: Storage,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        token_ttl: timedelta = timedelta(hours=1),
        clock: Clock = utc_now,
        pwd_context: Optional[CryptContext] = None,
    ):
        self.storage = storage
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_ttl = token_ttl
        self.clock = clock
        self.pwd_context = pwd_context or make_password_context()

    def register(self, username: str, password: str) -> User:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required")
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError(f"Username must be at most {MAX_USERNAME_LENGTH} characters")

        user = self.storage.add_user(username, hash_password(self.pwd_context, password))
        logger.info("Registered user %r (id=%s)", user.username, user.id)
        return user

    def login(self, username: str, password: str) -> str:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required")

        user = self.storage.get_user_by_username(username)
        if user is None:
            # Spend the same hashing time as a real check.
            self.pwd_context.dummy_verify()
            logger.info("Login failed for %r", username)
            raise AuthError(INVALID_CREDENTIALS)
        if not verify_password(self.pwd_context, password, user.password_hash):
            logger.info("Login failed for %r", username)
            raise AuthError(INVALID_CREDENTIALS)

        return self.create_access_token(user)

    def create_access_token(self, user: User) -> str:
        issued_at = self.clock()
        expire = issued_at + self.token_ttl
        to_encode = {
            "sub": str(user.id),
            "username": user.username,
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> Identity:
        if not token:
            raise AuthError(INVALID_TOKEN)
        try:
            # Expiry is checked below against our clock, not the wall clock.
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError:
            raise AuthError(INVALID_TOKEN)

        sub = payload.get("sub")
        username = payload.get("username")
        exp = payload.get("exp")
        if not isinstance(sub, str) or not sub.isdigit():
            raise AuthError(INVALID_TOKEN)
        if not isinstance(username, str) or not username:
            raise AuthError(INVALID_TOKEN)
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise AuthError(INVALID_TOKEN)
        if self.clock().timestamp() >= exp:
            raise AuthError(INVALID_TOKEN)

        return Identity(user_id=int(sub), username=username)
