import logging
import os
from pathlib import Path
from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from src.api import db
from src.api.errors import register_exception_handlers
from src.api.routers import auth, comments, post_types, posts, users

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"

openapi_tags = [
    {"name": "Health", "description": "Service health checks."},
    {"name": "Auth", "description": "Register, login, current user and password change."},
    {"name": "Users", "description": "User directory and account deletion."},
    {"name": "Posts", "description": "Post CRUD."},
    {"name": "Post types", "description": "Categories assigned to posts."},
    {"name": "Comments", "description": "Comments on posts."},
]

app = FastAPI(
    title="Posts & Comments API",
    description=(
        "Backend for a small posts-and-comments site: accounts, posts, post types and comments.\n\n"
        "Auth: send `Authorization: Bearer <token>` (returned by /auth/login) on every mutating request."
    ),
    version="1.0.0",
    openapi_tags=openapi_tags,
)


def _allowed_origins() -> list:
    env_val = os.getenv("CORS_ALLOW_ORIGINS")
    if not env_val:
        return ["*"]
    return [o.strip() for o in env_val.split(",") if o.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.on_event("startup")
def _startup() -> None:
    db.init_db_pool()
    if os.getenv("DB_INIT_SCHEMA", "").lower() in ("1", "true", "yes"):
        db.init_schema()


@app.on_event("shutdown")
def _shutdown() -> None:
    db.close_db_pool()


@app.get("/health", tags=["Health"], summary="Health check")
def health_check() -> Dict[str, str]:
    """Health check endpoint used by the browser pages to verify backend availability."""
    return {"message": "Healthy"}


app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(post_types.router, prefix="/post-types", tags=["Post types"])
app.include_router(comments.router, prefix="/comments", tags=["Comments"])


# =========================
# Browser pages
# =========================

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/", include_in_schema=False)
def index() -> FileResponse:
    """Single-page client; routing happens after the '#'."""
    return FileResponse(STATIC_DIR / "index.html")
