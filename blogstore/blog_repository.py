"""BlogRepository: reads and writes users and posts.

A user document lists the IDs of its posts in order (``posts``); each post
names its user in ``author``. Both sides are kept in step here, the store
knows nothing of the relationship.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from blogstore.config import StoreConfig
from blogstore.document_store import CollectionReference, DocumentStore
from blogstore.entities import (
    Post,
    PostData,
    PostSchema,
    SortOrder,
    User,
    UserData,
    UserRecord,
    UserSchema,
)
from blogstore.entity_mapper import EntityMapper
from blogstore.errors import PostNotFound, UserNotFound
from blogstore.field_values import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion

logger = logging.getLogger(__name__)


class BlogRepository:
    """Data access for the ``users`` and ``posts`` collections.

    Lookups come in two shapes: ``get_*`` raises UserNotFound/PostNotFound,
    ``*_exists`` returns False or None instead.
    """

    def __init__(self, store: DocumentStore, config: StoreConfig | None = None):
        self.store = store
        self.config = config or StoreConfig()
        self.user_mapper = EntityMapper(UserRecord)
        self.post_mapper = EntityMapper(Post)

    @property
    def users(self) -> CollectionReference:
        return self.store.collection(self.config.users_collection)

    @property
    def posts(self) -> CollectionReference:
        return self.store.collection(self.config.posts_collection)

    # Users
    async def user_exists(self, user_id: str) -> bool:
        """Check whether a user document with this ID exists"""
        snapshot = await self.users.doc(user_id).get()
        return snapshot.exists

    async def user_with_name_exists(self, name: str) -> bool:
        """Check whether any user has this name"""
        snapshots = await self.users.where(UserSchema.name, "==", name).get()
        return len(snapshots) > 0

    async def get_user(self, user_id: str) -> User:
        """Fetch a user with their posts hydrated in reference order.

        Raises:
            UserNotFound: no user with this ID
            PostNotFound: a referenced post no longer exists
        """
        snapshot = await self.users.doc(user_id).get()
        if not snapshot.exists:
            raise UserNotFound(f"No user with id '{user_id}'")
        return await self._hydrate(self.user_mapper.map_snapshot_to_entity(snapshot))

    async def get_user_by_name(self, name: str) -> User:
        """Fetch a user by name, as get_user. The first match wins if several share it."""
        snapshots = await self.users.where(UserSchema.name, "==", name).get()
        if not snapshots or not snapshots[0].exists:
            raise UserNotFound(f"No user named '{name}'")
        return await self._hydrate(self.user_mapper.map_snapshot_to_entity(snapshots[0]))

    async def _hydrate(self, record: UserRecord) -> User:
        posts = await asyncio.gather(*(self.get_post(post_id) for post_id in record.posts))
        return User.model_validate({**record.model_dump(), "posts": list(posts)})

    async def set_user(self, user_id: str, data: UserData | Mapping[str, Any]) -> None:
        """Create or fully overwrite the user document at ``user_id``.

        Does not check name uniqueness; callers check with user_with_name_exists.
        """
        if isinstance(data, User):
            data = data.to_record()
        elif not isinstance(data, UserData):
            data = UserData.model_validate(data)
        await self.users.doc(user_id).set(data.to_document())

    # Posts
    async def post_exists(self, post_id: str) -> bool:
        """Check whether a post document with this ID exists"""
        snapshot = await self.posts.doc(post_id).get()
        return snapshot.exists

    async def get_post(self, post_id: str) -> Post:
        """Fetch one post.

        Raises:
            PostNotFound: no post with this ID
        """
        snapshot = await self.posts.doc(post_id).get()
        if not snapshot.exists:
            raise PostNotFound(f"No post with id '{post_id}'")
        return self.post_mapper.map_snapshot_to_entity(snapshot)

    @staticmethod
    def _find_by_slug(user: User, slug: str) -> Post | None:
        return next((post for post in user.posts if post.slug == slug), None)

    async def post_with_username_and_slug_exists(self, name: str, slug: str) -> Post | None:
        """Return the post of the named user with this slug, or None"""
        return self._find_by_slug(await self.get_user_by_name(name), slug)

    async def post_with_user_id_and_slug_exists(self, user_id: str, slug: str) -> Post | None:
        """Return the post of the user with this slug, or None"""
        return self._find_by_slug(await self.get_user(user_id), slug)

    async def get_post_by_username_and_slug(self, name: str, slug: str) -> Post:
        """Fetch the post of the named user with this slug.

        Raises:
            UserNotFound: no user with this name
            PostNotFound: the user has no post with this slug
        """
        post = await self.post_with_username_and_slug_exists(name, slug)
        if post is None:
            raise PostNotFound(f"User '{name}' has no post with slug '{slug}'")
        return post

    async def get_post_by_user_id_and_slug(self, user_id: str, slug: str) -> Post:
        """As get_post_by_username_and_slug, keyed by user ID"""
        post = await self.post_with_user_id_and_slug_exists(user_id, slug)
        if post is None:
            raise PostNotFound(f"User '{user_id}' has no post with slug '{slug}'")
        return post

    async def list_posts_for_author(self, user_id: str) -> list[Post]:
        """Posts whose author is ``user_id``, most recently edited first"""
        snapshots = await (
            self.posts.where(PostSchema.author, "==", user_id)
            .order_by(PostSchema.last_edited, SortOrder.DESC)
            .get()
        )
        return self.post_mapper.map_snapshots_to_entities(snapshots)

    async def set_post(self, post_id: str, data: PostData | Mapping[str, Any]) -> None:
        """Create or fully overwrite the post document at ``post_id``.

        The author's ``posts`` list is left untouched.
        """
        if not isinstance(data, PostData):
            data = PostData.model_validate(data)
        await self.posts.doc(post_id).set(data.to_document())

    # Post lifecycle
    async def create_post_for_user(self, user_id: str) -> str:
        """Create an empty draft for the user and return its ID.

        Three writes: insert the draft, set its slug to its ID, append the ID
        to the user's ``posts``. With ``transactional_writes`` they commit
        together; otherwise a failure part way leaves the earlier writes.
        A missing user fails the last step with DocumentNotFound.
        """
        if self.config.transactional_writes:
            async with self.store.transaction():
                return await self._create_post_for_user(user_id)
        return await self._create_post_for_user(user_id)

    async def _create_post_for_user(self, user_id: str) -> str:
        ref = await self.posts.add(
            {
                PostSchema.title: "",
                PostSchema.excerpt: "",
                PostSchema.content: "",
                PostSchema.author: user_id,
                PostSchema.published: False,
                PostSchema.last_edited: SERVER_TIMESTAMP,
            }
        )
        await ref.update({PostSchema.slug: ref.id})
        await self.users.doc(user_id).update({UserSchema.posts: ArrayUnion(ref.id)})
        logger.debug("Created post %s for user %s", ref.id, user_id)
        return ref.id

    async def remove_post_for_user(self, user_id: str, post_id: str) -> None:
        """Delete the post, then drop its ID from the user's ``posts``.

        Without ``transactional_writes`` a failure between the two leaves a
        dangling ID, which later surfaces as PostNotFound from get_user.
        """
        if self.config.transactional_writes:
            async with self.store.transaction():
                await self._remove_post_for_user(user_id, post_id)
            return
        await self._remove_post_for_user(user_id, post_id)

    async def _remove_post_for_user(self, user_id: str, post_id: str) -> None:
        await self.posts.doc(post_id).delete()
        await self.users.doc(user_id).update({UserSchema.posts: ArrayRemove(post_id)})
        logger.debug("Removed post %s from user %s", post_id, user_id)
