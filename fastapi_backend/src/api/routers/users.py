import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path

from src.api import auth_utils, db
from src.api.auth_utils import get_optional_user
from src.api.errors import forbidden, not_found
from src.api.schemas import ERROR_RESPONSES, MAX_DB_ID, APIMessage, User, UserWithPostCount

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)


@router.get("", response_model=List[UserWithPostCount], summary="List users")
def list_users() -> List[Dict[str, Any]]:
    """Users with the number of posts each has written, newest account first."""
    return db.fetch_all(
        """
        SELECT u.id, u.username, u.created_at, COUNT(p.id) AS post_count
        FROM users u
        LEFT JOIN posts p ON p.author_id = u.id
        GROUP BY u.id, u.username, u.created_at
        ORDER BY u.created_at DESC
        """
    )


@router.get("/{user_id}", response_model=User, summary="Get user")
def get_user(user_id: int = Path(..., ge=1, le=MAX_DB_ID)) -> Dict[str, Any]:
    user = auth_utils.get_user_by_id(user_id)
    if not user:
        raise not_found("Usuario no encontrado")
    return user


@router.delete("/{user_id}", response_model=APIMessage, summary="Delete account")
def delete_user(
    user_id: int = Path(..., ge=1, le=MAX_DB_ID),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> APIMessage:
    """
    Delete an account. Posts and comments go with it (ON DELETE CASCADE).

    With a bearer token only the token's own account may be deleted.
    """
    if user is not None and user_id != user["id"]:
        raise forbidden("Solo puedes eliminar tu propia cuenta")

    affected = db.execute("DELETE FROM users WHERE id=%(id)s", {"id": user_id})
    if affected == 0:
        raise not_found("Usuario no encontrado")

    logger.info("Deleted user id=%s", user_id)
    return APIMessage(message="Usuario eliminado exitosamente")
