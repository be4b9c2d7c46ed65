import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import psycopg2
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from src.api import db

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
)
_bearer = HTTPBearer(auto_error=False)

MIN_PASSWORD_LENGTH = 6


class UserAlreadyExistsError(Exception):
    """Raised by create_user when the username is already taken."""

    def __init__(self, username: str):
        super().__init__("El usuario ya existe")
        self.username = username


class AuthBackendError(Exception):
    """The user store could not be queried; distinct from wrong credentials."""


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing required environment variable '{name}'. "
            "Set it in the environment or the container .env."
        )
    return value


def _jwt_secret() -> str:
    # Required for security; do not default.
    return _required_env("JWT_SECRET")


def _jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "HS256")


def _jwt_exp_minutes() -> int:
    return int(os.getenv("JWT_EXPIRES_MINUTES", "10080"))  # default: 7 days


# PUBLIC_INTERFACE
def hash_password(password: str) -> str:
    """Hash a plaintext password."""
    return _pwd_context.hash(password)


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    """Verify a plaintext password against a stored hash."""
    return _pwd_context.verify(password, password_hash)


# PUBLIC_INTERFACE
def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a user row without the password hash."""
    return {k: v for k, v in user.items() if k != "password_hash"}


# PUBLIC_INTERFACE
def create_user(username: str, password: str) -> Dict[str, Any]:
    """
    Insert a new user and return its public fields (id, username, created_at).

    Raises UserAlreadyExistsError when the username is taken; any other
    database error propagates unchanged.
    """
    try:
        return db.execute_returning_one(
            """
            INSERT INTO users (username, password_hash)
            VALUES (%(username)s, %(password_hash)s)
            RETURNING id, username, created_at
            """,
            {"username": username, "password_hash": hash_password(password)},
        )
    except psycopg2.Error as exc:
        if db.is_unique_violation(exc):
            raise UserAlreadyExistsError(username) from exc
        raise


# PUBLIC_INTERFACE
def verify_user(username: str, password: str) -> Optional[Dict[str, Any]]:
    """
    Return the full user row when the credentials match, otherwise None.

    A failing lookup raises AuthBackendError instead of looking like a bad
    password.
    """
    try:
        user = db.fetch_one("SELECT * FROM users WHERE username=%(username)s", {"username": username})
    except psycopg2.Error as exc:
        logger.error("User lookup failed for %r: %s", username, exc)
        raise AuthBackendError("User store unavailable") from exc

    if not user:
        return None
    if not verify_password(password, user["password_hash"]):
        return None
    return user


# PUBLIC_INTERFACE
def get_user_by_id(user_id: int) -> Optional[Dict[str, Any]]:
    """Public fields of a user, or None."""
    return db.fetch_one(
        "SELECT id, username, created_at FROM users WHERE id=%(id)s",
        {"id": user_id},
    )


def _create_access_token(payload: Dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = payload.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, _jwt_secret(), algorithm=_jwt_algorithm())


# PUBLIC_INTERFACE
def create_user_access_token(user_id: int, username: str) -> str:
    """Create a JWT access token for a user."""
    return _create_access_token(
        {"sub": str(user_id), "username": username},
        expires_delta=timedelta(minutes=_jwt_exp_minutes()),
    )


def _unauthorized(detail: str = "No autenticado") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_from_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, _jwt_secret(), algorithms=[_jwt_algorithm()])
        sub = payload.get("sub")
        if not sub:
            raise _unauthorized("Token inválido")
        user_id = int(sub)
    except (JWTError, ValueError):
        raise _unauthorized("Token inválido")

    user = get_user_by_id(user_id)
    if not user:
        raise _unauthorized("Usuario no encontrado")
    return user


# PUBLIC_INTERFACE
def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Dict[str, Any]]:
    """
    Dependency for endpoints that also accept the identity in the request.

    Returns None when no bearer token was sent. A token that is sent must be
    valid; a bad or stale one is still a 401.
    """
    if credentials is None:
        return None
    return _user_from_token(credentials.credentials)


# PUBLIC_INTERFACE
def get_current_user(user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    """Dependency that returns the current authenticated user row."""
    if user is None:
        raise _unauthorized()
    return user


# PUBLIC_INTERFACE
def resolve_acting_user_id(
    user: Optional[Dict[str, Any]], claimed_id: Optional[int], missing_message: str
) -> int:
    """
    Id of the user performing a mutation.

    With a token the token's user wins and a different claimed id is
    rejected (403). Without a token the id sent in the request is used.
    """
    if user is None:
        if claimed_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=missing_message)
        return claimed_id
    if claimed_id is not None and claimed_id != user["id"]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No puedes actuar en nombre de otro usuario")
    return user["id"]
