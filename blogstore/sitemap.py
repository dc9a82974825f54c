"""Batch traversal feeding sitemap generation"""

import asyncio
import logging

from blogstore.blog_repository import BlogRepository
from blogstore.document_store import DocumentSnapshot
from blogstore.entities import PostSchema, SitemapPost, SitemapUser, UserRecord

logger = logging.getLogger(__name__)


class SitemapGenerator:
    """Lists users with at least one published post, with those posts' public fields.

    Reads every user and every referenced post; meant for small data volumes.
    """

    def __init__(self, repository: BlogRepository):
        self.repository = repository

    async def get_all_users_with_published_posts(self) -> list[SitemapUser]:
        users: list[SitemapUser] = []
        for snapshot in await self.repository.users.get():
            record = self.repository.user_mapper.map_snapshot_to_entity(snapshot)
            if not record.posts:
                continue
            posts = await self._published_posts(record)
            if posts:
                users.append(
                    SitemapUser(
                        id=record.id,
                        name=record.name,
                        photo=record.photo,
                        display_name=record.display_name,
                        posts=posts,
                    )
                )
        logger.debug("Sitemap lists %d users", len(users))
        return users

    async def _published_posts(self, record: UserRecord) -> list[SitemapPost]:
        # Missing posts are skipped here, unlike BlogRepository.get_user
        snapshots = await asyncio.gather(
            *(self.repository.posts.doc(post_id).get() for post_id in record.posts)
        )
        return [
            self._project(snapshot)
            for snapshot in snapshots
            if snapshot.exists and snapshot.get(PostSchema.published) is True
        ]

    @staticmethod
    def _project(snapshot: DocumentSnapshot) -> SitemapPost:
        return SitemapPost(
            id=snapshot.id,
            slug=snapshot.get(PostSchema.slug),
            last_edited=snapshot.get(PostSchema.last_edited),
            title=snapshot.get(PostSchema.title, ""),
        )


async def get_all_users_with_published_posts(
    repository: BlogRepository,
) -> list[SitemapUser]:
    """Shortcut for SitemapGenerator(repository).get_all_users_with_published_posts()"""
    return await SitemapGenerator(repository).get_all_users_with_published_posts()
