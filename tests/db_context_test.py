import asyncio

import pytest

from blogstore.blog_repository import BlogRepository
from blogstore.database_operations import DatabaseOperations
from blogstore.db_context import DatabaseManager, DocumentOperation, QueryTracker, transactional
from blogstore.entities import UserData

TEST_DB = "test_db"


class TestDatabaseManager:
    """Test DatabaseManager functionality"""

    @pytest.mark.asyncio
    async def test_get_pool_not_found(self):
        """Test that get_pool raises ValueError when pool doesn't exist"""
        with pytest.raises(ValueError, match="Database pool 'nonexistent' not found"):
            await DatabaseManager.get_pool("nonexistent")

    @pytest.mark.asyncio
    async def test_get_current_connection_no_context(self):
        """Test that get_current_connection returns None when no transaction context"""
        assert DatabaseManager.get_current_connection() is None
        assert DatabaseManager.get_connection_lock() is None

    @pytest.mark.asyncio
    async def test_operations_without_pool_fail(self):
        """Statements outside a transaction need a registered pool"""
        with pytest.raises(ValueError, match="Database pool 'missing' not found"):
            await DatabaseOperations("missing").fetch_value("SELECT 1", [])

    @pytest.mark.asyncio
    async def test_remove_unknown_pool(self):
        assert await DatabaseManager.remove_pool("never-added") is None

    @pytest.mark.asyncio
    async def test_transaction_binds_connection(self, postgres_store):
        """Inside a transaction every statement runs on the bound connection"""
        async with DatabaseManager.transaction(TEST_DB) as conn:
            assert DatabaseManager.get_current_connection() is conn
            assert DatabaseManager.get_connection_lock() is not None

            async with DatabaseManager.transaction(TEST_DB) as nested:
                assert nested is conn

        assert DatabaseManager.get_current_connection() is None

    @pytest.mark.asyncio
    async def test_gathered_statements_share_transaction_connection(self, postgres_store):
        """Concurrent statements inside a transaction are serialized on one connection"""
        ops = DatabaseOperations(TEST_DB)

        async with DatabaseManager.transaction(TEST_DB):
            pids = await asyncio.gather(
                *(ops.fetch_value("SELECT pg_backend_pid()", []) for _ in range(4))
            )

        assert len(set(pids)) == 1

    @pytest.mark.asyncio
    async def test_get_user_inside_transaction(self, postgres_store):
        """Post fan-out works on a transaction-bound connection"""
        repo = BlogRepository(postgres_store)
        await repo.set_user("u1", UserData(name="alice"))

        @transactional(db_name=TEST_DB)
        async def create_two_and_read():
            await repo.create_post_for_user("u1")
            await repo.create_post_for_user("u1")
            return await repo.get_user("u1")

        user = await create_two_and_read()
        assert len(user.posts) == 2


class TestQueryTracking:
    """Statement tracking across the store"""

    def test_operations_collapse_statements_of_one_call(self):
        tracker = QueryTracker()
        update = DocumentOperation("update", "users", "u1")
        tracker.log_query("SELECT ... FOR UPDATE", ["u1"], update)
        tracker.log_query("UPDATE users ...", ["u1", "{}"], update)
        tracker.log_query("SELECT 1", [])
        tracker.log_query("SELECT id, data FROM posts", [], DocumentOperation("query", "posts"))

        assert tracker.count() == 4
        assert [str(op) for op in tracker.operations()] == ["update users/u1", "query posts"]
        assert tracker.get_queries()[2].operation is None

    @pytest.mark.asyncio
    async def test_get_user_statements(self, postgres_store):
        """get_user reads the user, then each referenced post"""
        repo = BlogRepository(postgres_store)
        await repo.set_user("u1", UserData(name="alice"))
        first = await repo.create_post_for_user("u1")
        second = await repo.create_post_for_user("u1")

        async with DatabaseManager.track_queries() as tracker:
            await repo.get_user("u1")

        queries = tracker.get_queries()
        assert len(queries) == 3
        assert queries[0].params == ["u1"]
        assert "FROM users" in queries[0].query
        assert sorted(q.params[0] for q in queries[1:]) == sorted([first, second])
        assert all("FROM posts" in q.query for q in queries[1:])
        assert queries[0].stack_trace
        assert queries[0].operation == DocumentOperation("get", "users", "u1")
        assert {str(op) for op in tracker.operations()[1:]} == {
            f"get posts/{first}",
            f"get posts/{second}",
        }

    @pytest.mark.asyncio
    async def test_transactional_with_query_logs(self, postgres_store):
        """@transactional(query_logs=True) tracks the statements of the call"""
        repo = BlogRepository(postgres_store)
        await repo.set_user("u1", UserData(name="alice"))

        @transactional(db_name=TEST_DB, query_logs=True)
        async def create_post():
            post_id = await repo.create_post_for_user("u1")
            tracker = DatabaseManager.get_query_tracker()
            return post_id, tracker.get_queries(), tracker.operations()

        post_id, queries, operations = await create_post()

        # add, then read-modify-write for the slug and for the user's posts
        assert len(queries) == 5
        assert queries[0].query.startswith("INSERT INTO posts")
        assert queries[0].params[0] == post_id
        assert "FOR UPDATE" in queries[1].query
        assert queries[4].params[0] == "u1"
        assert [str(op) for op in operations] == [
            f"add posts/{post_id}",
            f"update posts/{post_id}",
            "update users/u1",
        ]
        assert DatabaseManager.get_query_tracker() is None

    @pytest.mark.asyncio
    async def test_transactional_without_query_logs(self, postgres_store):
        """Test @transactional decorator with query_logs=False (default)"""

        @transactional(db_name=TEST_DB)
        async def read():
            assert DatabaseManager.get_query_tracker() is None

        await read()
