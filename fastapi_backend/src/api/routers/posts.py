import logging
from typing import Any, Dict, List, Optional

import psycopg2
from fastapi import APIRouter, Depends, Path

from src.api import db
from src.api.auth_utils import get_optional_user, resolve_acting_user_id
from src.api.errors import bad_request, forbidden, not_found
from src.api.schemas import ERROR_RESPONSES, MAX_DB_ID, APIMessage, Post, PostCreate, PostWrite

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)

NOT_FOUND = "Post no encontrado"

# Joins a row source named "p" with its author and post type names.
_POST_COLUMNS = "p.*, u.username AS author_username, pt.name AS post_type_name"
_POST_JOINS = """
    INNER JOIN users u ON p.author_id = u.id
    INNER JOIN post_types pt ON p.post_type_id = pt.id
"""


def _validated_fields(payload: PostWrite) -> Dict[str, Any]:
    if not payload.title or not payload.title.strip():
        raise bad_request("El título es requerido")
    if not payload.content or not payload.content.strip():
        raise bad_request("El contenido es requerido")
    if payload.post_type_id is None:
        raise bad_request("El tipo de post es requerido")
    return {
        "title": payload.title.strip(),
        "content": payload.content.strip(),
        "post_type_id": payload.post_type_id,
    }


def _lock_post(cur, post_id: int, user_id: Optional[int], action: str) -> None:
    """Lock the post row; when a user is known it must be the author."""
    cur.execute("SELECT author_id FROM posts WHERE id=%(id)s FOR UPDATE", {"id": post_id})
    row = cur.fetchone()
    if not row:
        raise not_found(NOT_FOUND)
    if user_id is not None and row["author_id"] != user_id:
        raise forbidden(f"No tienes permiso para {action} este post")


def _user_id(user: Optional[Dict[str, Any]]) -> Optional[int]:
    return user["id"] if user else None


@router.get("", response_model=List[Post], summary="List posts")
def list_posts() -> List[Dict[str, Any]]:
    """All posts, newest first."""
    return db.fetch_all(f"SELECT {_POST_COLUMNS} FROM posts p {_POST_JOINS} ORDER BY p.created_at DESC")


@router.post("", response_model=Post, summary="Create post")
def create_post(payload: PostCreate, user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    """
    Create a post.

    The author is the token's user when a bearer token is sent, otherwise
    the `author_id` of the body.
    """
    params = _validated_fields(payload)
    params["author_id"] = resolve_acting_user_id(user, payload.author_id, "El autor es requerido")
    try:
        post = db.execute_returning_one(
            f"""
            WITH p AS (
                INSERT INTO posts (author_id, post_type_id, title, content)
                VALUES (%(author_id)s, %(post_type_id)s, %(title)s, %(content)s)
                RETURNING *
            )
            SELECT {_POST_COLUMNS} FROM p {_POST_JOINS}
            """,
            params,
        )
    except psycopg2.Error as exc:
        if db.is_foreign_key_violation(exc):
            if db.violated_constraint(exc) == "posts_author_id_fkey":
                raise bad_request("El autor no existe")
            raise bad_request("El tipo de post no existe")
        raise

    logger.info("User id=%s created post id=%s", params["author_id"], post["id"])
    return post


@router.get("/{post_id}", response_model=Post, summary="Get post")
def get_post(post_id: int = Path(..., ge=1, le=MAX_DB_ID)) -> Dict[str, Any]:
    post = db.fetch_one(f"SELECT {_POST_COLUMNS} FROM posts p {_POST_JOINS} WHERE p.id=%(id)s", {"id": post_id})
    if not post:
        raise not_found(NOT_FOUND)
    return post


@router.put("/{post_id}", response_model=Post, summary="Update post")
def update_post(
    payload: PostWrite,
    post_id: int = Path(..., ge=1, le=MAX_DB_ID),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> Dict[str, Any]:
    """Replace title, content and type of a post; with a token only the author may."""
    params = _validated_fields(payload)
    params["id"] = post_id
    try:
        with db.transaction() as cur:
            _lock_post(cur, post_id, _user_id(user), "editar")
            cur.execute(
                f"""
                WITH p AS (
                    UPDATE posts
                    SET title=%(title)s, content=%(content)s, post_type_id=%(post_type_id)s, updated_at=NOW()
                    WHERE id=%(id)s
                    RETURNING *
                )
                SELECT {_POST_COLUMNS} FROM p {_POST_JOINS}
                """,
                params,
            )
            post = cur.fetchone()
    except psycopg2.Error as exc:
        if db.is_foreign_key_violation(exc):
            raise bad_request("El tipo de post no existe")
        raise
    return dict(post)


@router.delete("/{post_id}", response_model=APIMessage, summary="Delete post")
def delete_post(
    post_id: int = Path(..., ge=1, le=MAX_DB_ID),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> APIMessage:
    """Delete a post along with its comments; with a token only the author may."""
    with db.transaction() as cur:
        _lock_post(cur, post_id, _user_id(user), "eliminar")
        cur.execute("DELETE FROM posts WHERE id=%(id)s", {"id": post_id})

    logger.info("Deleted post id=%s (user id=%s)", post_id, _user_id(user))
    return APIMessage(message="Post eliminado correctamente")
