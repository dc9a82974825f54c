"""
Configuration for the blog data access layer.

StoreConfig shapes the data access layer (collection names, write
hardening); DatabaseSettings holds PostgreSQL connection parameters and is
read from the environment (prefix ``BLOGSTORE_DB_``) or a ``.env`` file.
"""

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from blogstore.postgres_backend import qualified_table_name


class StoreConfig(BaseModel):
    """Configuration options for BlogRepository and collection bootstrap"""

    db_schema: str | None = Field(default=None, description="Database schema name")
    users_collection: str = Field(default="users", description="Collection of users")
    posts_collection: str = Field(default="posts", description="Collection of posts")
    transactional_writes: bool = Field(
        default=False,
        description="Run multi-step post creation and removal inside one transaction",
    )
    unique_user_names: bool = Field(
        default=False,
        description="Enforce unique user names with a store-side unique index",
    )

    @field_validator("users_collection", "posts_collection", "db_schema")
    @classmethod
    def _check_identifier(cls, value: str | None) -> str | None:
        if value is not None:
            qualified_table_name(value)
        return value


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BLOGSTORE_DB_",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL user")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="postgres", description="PostgreSQL database name")

    min_pool_size: int = Field(default=1, ge=0, description="Minimum pool connections")
    max_pool_size: int = Field(default=10, ge=1, description="Maximum pool connections")

    @property
    def dsn(self) -> str:
        """asyncpg connection string"""
        return (
            f"postgresql://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )
