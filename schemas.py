"""
Database Schemas

Each Pydantic model maps to a MongoDB collection using the lowercase
class name as the collection name. Fields are stored and exposed in
camelCase (videoUrl, readTime, contentId, ...).
"""
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ContentType = Literal["Article", "Video", "Project", "Repository"]
Role = Literal["admin", "user"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class Author(CamelModel):
    """
    Collection: "author"
    """
    name: str = Field(..., min_length=1, description="Display name")
    avatar: Optional[str] = Field(None, description="Avatar image URL")
    bio: Optional[str] = Field(None, description="Short bio")


class ContentBase(CamelModel):
    """Editable fields of a content item, shared by create and update."""
    title: str = Field(..., min_length=1)
    subheading: Optional[str] = None
    content: Optional[str] = Field(None, description="Article body")
    video_url: Optional[str] = Field(None, description="Video URL for type=Video")
    date: Optional[datetime] = None
    read_time: Optional[str] = None
    duration: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    type: ContentType
    author: Optional[str] = Field(None, description="Author id")


class Content(ContentBase):
    """
    Collection: "content"

    commentsCount is not stored; it is counted from the comment
    collection whenever content is read.
    """
    date: datetime = Field(default_factory=utcnow)
    views: int = 0
    likes: int = 0
    bookmarks: int = 0


class Comment(CamelModel):
    """
    Collection: "comment"
    """
    content_id: str
    name: str = "Anonymous"
    email: Optional[str] = None
    text: str = Field(..., min_length=1)
    date: datetime = Field(default_factory=utcnow)


class Subscriber(CamelModel):
    """
    Collection: "subscriber" (unique index on email)
    """
    email: str
    subscribed_at: datetime = Field(default_factory=utcnow)


class User(CamelModel):
    """
    Collection: "user" (unique index on email)
    """
    username: str
    email: str
    password_hash: str = Field(..., description="bcrypt hash")
    role: Role = "user"


class ContactMessage(CamelModel):
    """
    Collection: "contactmessage"
    """
    name: str
    email: str
    message: str
    sent_at: datetime = Field(default_factory=utcnow)
