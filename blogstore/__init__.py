"""blogstore: data access for a small blogging application"""

from blogstore.blog_repository import BlogRepository
from blogstore.config import DatabaseSettings, StoreConfig
from blogstore.db_context import DatabaseManager, DocumentOperation, transactional
from blogstore.document_store import DocumentSnapshot, DocumentStore
from blogstore.entities import (
    Post,
    PostData,
    SitemapPost,
    SitemapUser,
    User,
    UserData,
    UserRecord,
)
from blogstore.errors import BlogStoreError, DocumentNotFound, PostNotFound, UserNotFound
from blogstore.field_values import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion
from blogstore.sitemap import SitemapGenerator, get_all_users_with_published_posts

__all__ = [
    "BlogRepository",
    "StoreConfig",
    "DatabaseSettings",
    "DatabaseManager",
    "DocumentOperation",
    "transactional",
    "DocumentStore",
    "DocumentSnapshot",
    "Post",
    "PostData",
    "User",
    "UserData",
    "UserRecord",
    "SitemapPost",
    "SitemapUser",
    "BlogStoreError",
    "UserNotFound",
    "PostNotFound",
    "DocumentNotFound",
    "SERVER_TIMESTAMP",
    "ArrayUnion",
    "ArrayRemove",
    "SitemapGenerator",
    "get_all_users_with_published_posts",
]
