from datetime import UTC, datetime
from enum import Enum
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel
from pydantic import Field as ModelField
from pydantic.config import ConfigDict


T = TypeVar("T")


class Field(Generic[T]):
    """Type-safe field definition for document schema classes.

    Usage:
        class PostSchema(SchemaBase):
            published = Field[bool]("published")
            last_edited = Field[datetime]("lastEdited")

    This allows for:
        store.collection("posts").where(PostSchema.author, "==", user_id)
        ref.update({PostSchema.slug: ref.id})
    """

    def __init__(self, name: str):
        """
        Args:
            name: The field name as stored in the document
        """
        self._name = name

    @property
    def name(self) -> str:
        """Return the stored document field name."""
        return self._name

    def __str__(self) -> str:
        """Return the field name when used in queries and updates"""
        return self._name

    def __repr__(self) -> str:
        return f"Field({self._name})"


class SchemaBase:
    """Base class for schema definitions with type-safe fields.

    Usage:
        class UserSchema(SchemaBase):
            name = Field[str]("name")
            display_name = Field[str]("displayName")
    """

    pass


class UserSchema(SchemaBase):
    name = Field[str]("name")
    display_name = Field[str]("displayName")
    photo = Field[str]("photo")
    posts = Field[list[str]]("posts")


class PostSchema(SchemaBase):
    title = Field[str]("title")
    excerpt = Field[str]("excerpt")
    content = Field[str]("content")
    author = Field[str]("author")
    published = Field[bool]("published")
    last_edited = Field[datetime]("lastEdited")
    slug = Field[str]("slug")


class DocumentModel(BaseModel):
    """Base class for stored documents.

    Stored names are camelCase (``displayName``, ``lastEdited``); attributes are
    snake_case. Unknown stored fields are kept, the store enforces no schema.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        populate_by_name=True, use_enum_values=True, extra="allow"
    )

    def to_document(self) -> dict:
        """Dump the model under its stored field names, without the document ID."""
        return self.model_dump(by_alias=True, exclude={"id"})


class PostData(DocumentModel):
    title: str = ""
    excerpt: str = ""
    content: str = ""
    author: str
    published: bool = False
    last_edited: datetime = ModelField(
        default_factory=lambda: datetime.now(UTC), alias="lastEdited"
    )
    slug: str | None = None


class Post(PostData):
    id: str


class UserData(DocumentModel):
    name: str
    display_name: str | None = ModelField(default=None, alias="displayName")
    photo: str | None = None
    posts: list[str] = ModelField(default_factory=list)


class UserRecord(UserData):
    """A user as stored: ``posts`` holds post IDs."""

    id: str


class User(UserData):
    """A hydrated user: ``posts`` holds the referenced posts in reference order."""

    id: str
    posts: list[Post] = ModelField(default_factory=list)

    def to_record(self) -> UserRecord:
        """Collapse hydrated posts back to their IDs."""
        data = self.model_dump(exclude={"posts"})
        return UserRecord.model_validate({**data, "posts": [p.id for p in self.posts]})


class SitemapPost(BaseModel):
    """Public fields of a published post."""

    model_config: ClassVar[ConfigDict] = ConfigDict(populate_by_name=True)

    id: str
    slug: str | None = None
    last_edited: datetime | None = ModelField(default=None, alias="lastEdited")
    title: str = ""


class SitemapUser(BaseModel):
    """Public profile of a user with their published posts."""

    model_config: ClassVar[ConfigDict] = ConfigDict(populate_by_name=True)

    id: str
    name: str
    photo: str | None = None
    display_name: str | None = ModelField(default=None, alias="displayName")
    posts: list[SitemapPost]


# Sorting functionality
class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"
