from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, conint, constr

# Ids are SERIAL/INTEGER columns.
MAX_DB_ID = 2**31 - 1
DbId = conint(ge=1, le=MAX_DB_ID)

# PostgreSQL TEXT cannot store NUL characters.
Text = constr(pattern=r"^[^\x00]*$")


class APIMessage(BaseModel):
    message: str = Field(..., description="Human readable message")


class APIError(BaseModel):
    error: str = Field(..., description="Message intended for direct display")


ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": APIError, "description": "Missing or invalid field"},
    401: {"model": APIError, "description": "Bad credentials or invalid token"},
    403: {"model": APIError, "description": "Acting on another user's data"},
    404: {"model": APIError, "description": "No row for that id"},
    500: {"model": APIError, "description": "Unexpected server error"},
}


# Request bodies keep every field optional: presence is checked by the
# handlers so that missing fields produce the domain messages, not 422s.


class RegisterRequest(BaseModel):
    username: Optional[Text] = Field(None, description="Unique username")
    password: Optional[Text] = Field(None, description="Password (min 6 chars)")


class LoginRequest(BaseModel):
    username: Optional[Text] = None
    password: Optional[Text] = None


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[DbId] = Field(
        None, alias="userId", description="Required without a bearer token; must match the token's user otherwise"
    )
    current_password: Optional[Text] = Field(None, alias="currentPassword")
    new_password: Optional[Text] = Field(None, alias="newPassword")
    confirm_password: Optional[Text] = Field(None, alias="confirmPassword")


class User(BaseModel):
    id: int
    username: str
    created_at: datetime


class UserWithPostCount(User):
    post_count: int = 0


class RegisterResponse(BaseModel):
    message: str
    user: User


class LoginResponse(BaseModel):
    message: str
    user: User
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field("bearer", description="Token type (bearer)")


class PostType(BaseModel):
    id: int
    name: str
    description: Optional[str] = None


class PostTypeWrite(BaseModel):
    name: Optional[Text] = None
    description: Optional[Text] = None


class Post(BaseModel):
    id: int
    author_id: int
    post_type_id: int
    title: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    author_username: Optional[str] = None
    post_type_name: Optional[str] = None


class PostWrite(BaseModel):
    title: Optional[Text] = None
    content: Optional[Text] = None
    post_type_id: Optional[DbId] = None


class PostCreate(PostWrite):
    author_id: Optional[DbId] = Field(None, description="Required without a bearer token")


class Comment(BaseModel):
    id: int
    post_id: int
    author_id: int
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    author_username: Optional[str] = None


class CommentCreate(BaseModel):
    post_id: Optional[DbId] = None
    author_id: Optional[DbId] = Field(None, description="Required without a bearer token")
    content: Optional[Text] = None


class CommentUpdate(BaseModel):
    content: Optional[Text] = None
