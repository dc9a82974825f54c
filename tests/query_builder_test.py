import json

import pytest

from blogstore.entities import PostSchema, UserSchema
from blogstore.query_builder import DocumentQueryBuilder


class TestDocumentQueryBuilder:
    """SQL generation for document tables, without a database."""

    def test_select_all(self):
        query, params = DocumentQueryBuilder("posts").build()

        assert query == "SELECT id, data FROM posts"
        assert params == []

    def test_where_equality_uses_parameters(self):
        query, params = DocumentQueryBuilder("users").where(UserSchema.name, "==", "alice").build()

        assert query == "SELECT id, data FROM users WHERE data -> $1::text = $2::jsonb"
        assert params == ["name", '"alice"']

    def test_where_defaults_to_equality(self):
        query, params = DocumentQueryBuilder("posts").where("published", True).build()

        assert "data -> $1::text = $2::jsonb" in query
        assert params == ["published", "true"]

    def test_where_not_equal(self):
        query, _ = DocumentQueryBuilder("posts").where("author", "!=", "u1").build()

        assert "data -> $1::text <> $2::jsonb" in query

    def test_where_in(self):
        query, params = DocumentQueryBuilder("posts").where("author", "in", ["u1", "u2"]).build()

        assert "data -> $1::text IN (SELECT jsonb_array_elements($2::jsonb))" in query
        assert json.loads(params[1]) == ["u1", "u2"]

    def test_conditions_joined_with_and(self):
        query, params = (
            DocumentQueryBuilder("posts")
            .where(PostSchema.author, "==", "u1")
            .where(PostSchema.published, "==", True)
            .build()
        )

        assert (
            query
            == "SELECT id, data FROM posts WHERE data -> $1::text = $2::jsonb "
            "AND data -> $3::text = $4::jsonb"
        )
        assert params == ["author", '"u1"', "published", "true"]

    def test_order_by_desc_requires_field_presence(self):
        query, params = (
            DocumentQueryBuilder("posts")
            .order_by_desc(PostSchema.last_edited)
            .order_by_id()
            .limit(5)
            .build()
        )

        assert query == (
            "SELECT id, data FROM posts WHERE data ? $1::text "
            "ORDER BY data -> $1::text DESC, id LIMIT 5"
        )
        assert params == ["lastEdited"]

    def test_where_id(self):
        query, params = DocumentQueryBuilder("app.posts").where_id("p1").build()

        assert query == "SELECT id, data FROM app.posts WHERE id = $1"
        assert params == ["p1"]

    def test_builder_is_immutable(self):
        base = DocumentQueryBuilder("posts")
        filtered = base.where("author", "u1")

        assert base.to_sql() == "SELECT id, data FROM posts"
        assert filtered.to_sql() != base.to_sql()

    def test_select_fields(self):
        assert DocumentQueryBuilder("posts").select("COUNT(*)").to_sql() == "SELECT COUNT(*) FROM posts"

    def test_invalid_operator(self):
        with pytest.raises(ValueError, match="Unsupported query operator"):
            DocumentQueryBuilder("posts").where("title", ">", "a")

    def test_invalid_arity(self):
        with pytest.raises(TypeError):
            DocumentQueryBuilder("posts").where("title", "==", "a", "b")

    def test_negative_limit(self):
        with pytest.raises(ValueError):
            DocumentQueryBuilder("posts").limit(-1)

    def test_str_shows_query_and_params(self):
        text = str(DocumentQueryBuilder("posts").where("author", "u1"))

        assert text.startswith("Query: SELECT id, data FROM posts WHERE")
        assert "Params: ['author', '\"u1\"']" in text
