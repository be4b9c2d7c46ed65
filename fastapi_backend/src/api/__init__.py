"""
API package for the posts & comments FastAPI backend.

Modules:
- db: PostgreSQL connection pooling, query helpers and bootstrap schema
- auth_utils: password hashing, user lookup and JWT auth helpers
- schemas: Pydantic models for the REST API
- errors: JSON error rendering
- routers: one router per resource (auth, users, posts, post types, comments)
"""
