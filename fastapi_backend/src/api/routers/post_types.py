import logging
from typing import Any, Dict, List, Optional

import psycopg2
from fastapi import APIRouter, Path

from src.api import db
from src.api.errors import bad_request, not_found
from src.api.schemas import ERROR_RESPONSES, MAX_DB_ID, APIMessage, PostType, PostTypeWrite

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)

DUPLICATE_NAME = "Ya existe un tipo con ese nombre"
NOT_FOUND = "Tipo de post no encontrado"


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    return description.strip() or None


def _validated_name(payload: PostTypeWrite) -> str:
    if not payload.name or not payload.name.strip():
        raise bad_request("El nombre es requerido")
    return payload.name.strip()


@router.get("", response_model=List[PostType], summary="List post types")
def list_post_types() -> List[Dict[str, Any]]:
    return db.fetch_all("SELECT * FROM post_types ORDER BY name")


@router.post("", response_model=PostType, summary="Create post type")
def create_post_type(payload: PostTypeWrite) -> Dict[str, Any]:
    name = _validated_name(payload)
    try:
        return db.execute_returning_one(
            "INSERT INTO post_types (name, description) VALUES (%(name)s, %(description)s) RETURNING *",
            {"name": name, "description": _clean_description(payload.description)},
        )
    except psycopg2.Error as exc:
        if db.is_unique_violation(exc):
            raise bad_request(DUPLICATE_NAME)
        raise


@router.get("/{post_type_id}", response_model=PostType, summary="Get post type")
def get_post_type(post_type_id: int = Path(..., ge=1, le=MAX_DB_ID)) -> Dict[str, Any]:
    post_type = db.fetch_one("SELECT * FROM post_types WHERE id=%(id)s", {"id": post_type_id})
    if not post_type:
        raise not_found(NOT_FOUND)
    return post_type


@router.put("/{post_type_id}", response_model=PostType, summary="Update post type")
def update_post_type(
    payload: PostTypeWrite, post_type_id: int = Path(..., ge=1, le=MAX_DB_ID)
) -> Dict[str, Any]:
    name = _validated_name(payload)
    try:
        updated = db.execute_returning_one(
            """
            UPDATE post_types SET name=%(name)s, description=%(description)s
            WHERE id=%(id)s
            RETURNING *
            """,
            {"id": post_type_id, "name": name, "description": _clean_description(payload.description)},
        )
    except psycopg2.Error as exc:
        if db.is_unique_violation(exc):
            raise bad_request(DUPLICATE_NAME)
        raise
    if not updated:
        raise not_found(NOT_FOUND)
    return updated


@router.delete("/{post_type_id}", response_model=APIMessage, summary="Delete post type")
def delete_post_type(post_type_id: int = Path(..., ge=1, le=MAX_DB_ID)) -> APIMessage:
    """
    Delete a post type nobody uses.

    The type row is locked first; inserting a post that references it needs a
    key-share lock on the same row, so the count cannot go stale before the
    DELETE runs.
    """
    try:
        with db.transaction() as cur:
            cur.execute("SELECT id FROM post_types WHERE id=%(id)s FOR UPDATE", {"id": post_type_id})
            if not cur.fetchone():
                raise not_found(NOT_FOUND)

            cur.execute("SELECT COUNT(*) AS post_count FROM posts WHERE post_type_id=%(id)s", {"id": post_type_id})
            post_count = cur.fetchone()["post_count"]
            if post_count > 0:
                raise bad_request(f"No se puede eliminar. Hay {post_count} posts usando este tipo.")

            cur.execute("DELETE FROM post_types WHERE id=%(id)s", {"id": post_type_id})
    except psycopg2.Error as exc:
        if db.is_foreign_key_violation(exc):
            raise bad_request("No se puede eliminar. Hay posts usando este tipo.")
        raise

    logger.info("Deleted post type id=%s", post_type_id)
    return APIMessage(message="Tipo eliminado correctamente")
