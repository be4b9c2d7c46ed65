import logging
from typing import Any, Dict, List, Optional

import psycopg2
from fastapi import APIRouter, Depends, Path, Query

from src.api import db
from src.api.auth_utils import get_optional_user, resolve_acting_user_id
from src.api.errors import bad_request, forbidden, not_found
from src.api.schemas import ERROR_RESPONSES, MAX_DB_ID, APIMessage, Comment, CommentCreate, CommentUpdate

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)

NOT_FOUND = "Comentario no encontrado"
CONTENT_REQUIRED = "El contenido del comentario es requerido"

_COMMENT_SELECT = "SELECT c.*, u.username AS author_username FROM {source} c INNER JOIN users u ON c.author_id = u.id"


def _lock_comment(cur, comment_id: int, user: Optional[Dict[str, Any]], action: str) -> None:
    cur.execute("SELECT author_id FROM comments WHERE id=%(id)s FOR UPDATE", {"id": comment_id})
    row = cur.fetchone()
    if not row:
        raise not_found(NOT_FOUND)
    if user is not None and row["author_id"] != user["id"]:
        raise forbidden(f"No tienes permiso para {action} este comentario")


@router.get("", response_model=List[Comment], summary="List comments")
def list_comments(
    post_id: Optional[int] = Query(None, alias="postId", ge=1, le=MAX_DB_ID, description="Only comments of this post"),
) -> List[Dict[str, Any]]:
    """Comments in chronological order, optionally for a single post."""
    query = _COMMENT_SELECT.format(source="comments")
    params: Dict[str, Any] = {}
    if post_id is not None:
        query += " WHERE c.post_id=%(post_id)s"
        params["post_id"] = post_id
    query += " ORDER BY c.created_at ASC"
    return db.fetch_all(query, params)


@router.post("", response_model=Comment, summary="Create comment")
def create_comment(
    payload: CommentCreate, user: Optional[Dict[str, Any]] = Depends(get_optional_user)
) -> Dict[str, Any]:
    if payload.post_id is None:
        raise bad_request("El post es requerido")
    if not payload.content or not payload.content.strip():
        raise bad_request(CONTENT_REQUIRED)
    author_id = resolve_acting_user_id(user, payload.author_id, "El autor es requerido")

    try:
        comment = db.execute_returning_one(
            """
            WITH c AS (
                INSERT INTO comments (post_id, author_id, content)
                VALUES (%(post_id)s, %(author_id)s, %(content)s)
                RETURNING *
            )
            """
            + _COMMENT_SELECT.format(source="c"),
            {"post_id": payload.post_id, "author_id": author_id, "content": payload.content.strip()},
        )
    except psycopg2.Error as exc:
        if db.is_foreign_key_violation(exc):
            if db.violated_constraint(exc) == "comments_author_id_fkey":
                raise bad_request("El autor no existe")
            raise not_found("Post no encontrado")
        raise

    logger.info("User id=%s commented on post id=%s", author_id, payload.post_id)
    return comment


@router.get("/{comment_id}", response_model=Comment, summary="Get comment")
def get_comment(comment_id: int = Path(..., ge=1, le=MAX_DB_ID)) -> Dict[str, Any]:
    comment = db.fetch_one(_COMMENT_SELECT.format(source="comments") + " WHERE c.id=%(id)s", {"id": comment_id})
    if not comment:
        raise not_found(NOT_FOUND)
    return comment


@router.put("/{comment_id}", response_model=Comment, summary="Update comment")
def update_comment(
    payload: CommentUpdate,
    comment_id: int = Path(..., ge=1, le=MAX_DB_ID),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> Dict[str, Any]:
    if not payload.content or not payload.content.strip():
        raise bad_request(CONTENT_REQUIRED)

    with db.transaction() as cur:
        _lock_comment(cur, comment_id, user, "editar")
        cur.execute(
            """
            WITH c AS (
                UPDATE comments SET content=%(content)s, updated_at=NOW()
                WHERE id=%(id)s
                RETURNING *
            )
            """
            + _COMMENT_SELECT.format(source="c"),
            {"id": comment_id, "content": payload.content.strip()},
        )
        comment = cur.fetchone()
    return dict(comment)


@router.delete("/{comment_id}", response_model=APIMessage, summary="Delete comment")
def delete_comment(
    comment_id: int = Path(..., ge=1, le=MAX_DB_ID),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> APIMessage:
    with db.transaction() as cur:
        _lock_comment(cur, comment_id, user, "eliminar")
        cur.execute("DELETE FROM comments WHERE id=%(id)s", {"id": comment_id})
    return APIMessage(message="Comentario eliminado correctamente")
