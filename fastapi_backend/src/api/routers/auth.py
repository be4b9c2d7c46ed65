import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from src.api import auth_utils, db
from src.api.auth_utils import (
    MIN_PASSWORD_LENGTH,
    UserAlreadyExistsError,
    get_current_user,
    get_optional_user,
    resolve_acting_user_id,
)
from src.api.errors import bad_request, forbidden, not_found, unauthorized
from src.api.schemas import (
    ERROR_RESPONSES,
    APIMessage,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    User,
)

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)

PASSWORD_TOO_SHORT = f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres"
ALL_FIELDS_REQUIRED = "Todos los campos son requeridos"


@router.post("/register", response_model=RegisterResponse, summary="Register")
def register(payload: RegisterRequest) -> Dict[str, Any]:
    """Create a user account. Does not log the user in."""
    if not payload.username or not payload.password:
        raise bad_request("Usuario y contraseña son requeridos")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise bad_request(PASSWORD_TOO_SHORT)

    try:
        user = auth_utils.create_user(payload.username, payload.password)
    except UserAlreadyExistsError as exc:
        raise bad_request(str(exc))

    logger.info("Registered user %s (id=%s)", user["username"], user["id"])
    return {"message": "Usuario creado exitosamente", "user": user}


@router.post("/login", response_model=LoginResponse, summary="Login")
def login(payload: LoginRequest) -> Dict[str, Any]:
    """Check credentials and return the user plus a bearer token."""
    if not payload.username or not payload.password:
        raise bad_request("Usuario y contraseña son requeridos")

    user = auth_utils.verify_user(payload.username, payload.password)
    if not user:
        raise unauthorized("Usuario o contraseña incorrectos")

    token = auth_utils.create_user_access_token(user["id"], user["username"])
    return {
        "message": "Login exitoso",
        "user": auth_utils.public_user(user),
        "access_token": token,
        "token_type": "bearer",
    }


@router.get("/me", response_model=User, summary="Get current user")
def me(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Return the current authenticated user."""
    return user


@router.post("/change-password", response_model=APIMessage, summary="Change password")
def change_password(
    payload: ChangePasswordRequest, user: Optional[Dict[str, Any]] = Depends(get_optional_user)
) -> APIMessage:
    """
    Change a user's password.

    The user is the token's user when a bearer token is sent, otherwise the
    `userId` of the body; the current password is checked either way. The
    stored hash is read with a row lock and replaced in the same transaction,
    so two concurrent changes cannot both pass the check.
    """
    if not payload.current_password or not payload.new_password:
        raise bad_request(ALL_FIELDS_REQUIRED)
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise bad_request(PASSWORD_TOO_SHORT)
    if payload.confirm_password is not None and payload.confirm_password != payload.new_password:
        raise bad_request("Las contraseñas no coinciden")
    if user is not None and payload.user_id is not None and payload.user_id != user["id"]:
        raise forbidden("No puedes cambiar la contraseña de otro usuario")
    user_id = resolve_acting_user_id(user, payload.user_id, ALL_FIELDS_REQUIRED)

    with db.transaction() as cur:
        cur.execute("SELECT id, password_hash FROM users WHERE id=%(id)s FOR UPDATE", {"id": user_id})
        row = cur.fetchone()
        if not row:
            raise not_found("Usuario no encontrado")
        if not auth_utils.verify_password(payload.current_password, row["password_hash"]):
            raise unauthorized("La contraseña actual es incorrecta")
        cur.execute(
            "UPDATE users SET password_hash=%(password_hash)s WHERE id=%(id)s",
            {"id": user_id, "password_hash": auth_utils.hash_password(payload.new_password)},
        )

    logger.info("Password changed for user id=%s", user_id)
    return APIMessage(message="Contraseña actualizada exitosamente")
