import asyncpg
import pytest
import pytest_asyncio

from blogstore.config import StoreConfig
from blogstore.database_setup import clear_collections, create_collections
from blogstore.db_context import DatabaseManager
from blogstore.document_store import DocumentStore

TEST_DB = "test_db"


@pytest.fixture(scope="session")
def postgres_container():
    """Start a PostgreSQL test container for the session, or skip without Docker."""
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:17")
    try:
        container.start()
    except Exception as exc:  # Docker missing or unreachable
        pytest.skip(f"PostgreSQL container unavailable: {exc}")
    yield container
    container.stop()


def container_dsn(container) -> str:
    host = container.get_container_host_ip()
    port = container.get_exposed_port(5432)
    return f"postgresql://{container.username}:{container.password}@{host}:{port}/{container.dbname}"


async def open_test_pool(container, config: StoreConfig) -> asyncpg.Pool:
    """Create a pool for one test, register it and bootstrap the collections."""
    # A new pool for each test avoids event loop issues
    pool = await asyncpg.create_pool(container_dsn(container), min_size=1, max_size=5)
    await DatabaseManager.add_pool(TEST_DB, pool)
    await create_collections(config, pool_name=TEST_DB)
    await clear_collections(config, pool_name=TEST_DB)
    return pool


async def close_test_pool(pool: asyncpg.Pool, config: StoreConfig):
    await clear_collections(config, pool_name=TEST_DB)
    # The container outlives the test; drop constraints a test config may have added
    async with pool.acquire() as conn:
        await conn.execute(f"DROP INDEX IF EXISTS {config.users_collection}_name_unique")
    await DatabaseManager.remove_pool(TEST_DB)
    await pool.close()


@pytest.fixture
def store_config() -> StoreConfig:
    return StoreConfig()


@pytest_asyncio.fixture(params=["memory", "postgres"])
async def store(request, store_config):
    """A document store on each backend."""
    if request.param == "memory":
        yield DocumentStore.in_memory()
        return

    container = request.getfixturevalue("postgres_container")
    pool = await open_test_pool(container, store_config)
    try:
        yield DocumentStore.postgres(TEST_DB, db_schema=store_config.db_schema)
    finally:
        await close_test_pool(pool, store_config)


@pytest_asyncio.fixture
async def postgres_store(request, store_config):
    """A document store on PostgreSQL only."""
    container = request.getfixturevalue("postgres_container")
    pool = await open_test_pool(container, store_config)
    try:
        yield DocumentStore.postgres(TEST_DB, db_schema=store_config.db_schema)
    finally:
        await close_test_pool(pool, store_config)
