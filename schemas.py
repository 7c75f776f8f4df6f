"""
Database Schemas for the quiz/social app

Each Pydantic model describes one document shape stored in a JSON
collection. Files keep camelCase keys (e.g. ownerId, isEmailVerified);
Python code uses the snake_case attribute names.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from errors import StoreError

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


D = TypeVar("D", bound=Document)


def parse_documents(model: Type[D], documents: List[Dict[str, Any]], collection: str) -> List[D]:
    try:
        return [model.model_validate(d) for d in documents]
    except PydanticValidationError as e:
        logger.error("Malformed document in %s: %s", collection, e)
        raise StoreError(f"Malformed data in {collection}") from e


class User(Document):
    """
    Users collection ("users")
    Passwords are stored as bcrypt hashes.
    """
    id: str
    name: str
    email: str = Field(..., description="Lower-cased, unique")
    password: str = Field(..., description="BCrypt hash of the user's password")
    avatar_url: Optional[str] = None
    is_email_verified: bool = False
    email_verification_token: Optional[str] = None
    reset_password_token: Optional[str] = None
    reset_password_expires: Optional[datetime] = None
    created_at: str
    updated_at: str
    last_login_at: Optional[str] = None
    followers: List[str] = Field(default_factory=list)
    following: List[str] = Field(default_factory=list)


class UserResponse(Document):
    """Public projection of a user: no password or tokens."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    name: str
    email: str
    avatar_url: Optional[str] = None
    is_email_verified: bool = False
    created_at: Optional[str] = None
    last_login_at: Optional[str] = None
    followers: List[str] = Field(default_factory=list)
    following: List[str] = Field(default_factory=list)


class Question(Document):
    question: str
    options: List[str] = Field(default_factory=list)
    correct_index: int = 0


class Test(Document):
    """
    Quizzes. User-authored ones live in "userTests", the seed set in "tests".
    The stats are written by the client and never recomputed here.
    """
    id: str
    owner_id: Optional[str] = None
    subject: str = ""
    score: Optional[float] = None
    taken_at: Optional[str] = None
    questions_count: int = 0
    respondents_count: int = 0
    average_score: float = 0
    average_correct: float = 0
    likes: List[str] = Field(default_factory=list)
    questions: List[Question] = Field(default_factory=list)


class TestComment(Document):
    """
    A comment on a test. Replies nest recursively; root comments have
    parentId null and only roots are filtered by testId.
    """
    id: str
    test_id: Optional[str] = None
    author_id: str
    body: str
    created_at: str
    updated_at: Optional[str] = None
    likes: List[str] = Field(default_factory=list)
    parent_id: Optional[str] = None
    replies: List["TestComment"] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        data = super().to_document()
        data.setdefault("parentId", None)
        return data


class Post(Document):
    id: str
    title: str = ""
    content: str = ""
    author_id: Optional[str] = None
    created_at: Optional[str] = None


class Comment(Document):
    """Flat comment on a post ("comments")."""
    id: str
    post_id: Optional[str] = None
    author_id: Optional[str] = None
    body: str = ""
    created_at: Optional[str] = None


# -------------------- Request bodies --------------------

class RegisterRequest(Document):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(Document):
    email: str = ""
    password: str = ""


class RefreshRequest(Document):
    refresh_token: str = ""


class VerifyEmailRequest(Document):
    token: str = ""


class ResetPasswordRequest(Document):
    email: str = ""


class ResetPasswordConfirmRequest(Document):
    token: str = ""
    new_password: str = ""


class CommentCreate(Document):
    author_id: Optional[str] = None
    body: Optional[str] = None
    parent_id: Optional[str] = None


class CommentUpdate(Document):
    body: Optional[str] = None


class LikeRequest(Document):
    user_id: Optional[str] = None
