"""
Simple QueryBuilder for SELECT statements over document tables.
The goal is to produce SQL queries without execution.

A document table has two columns: ``id TEXT`` and ``data JSONB``. Conditions
and ordering address top-level keys of ``data``; field names and values are
always passed as parameters.
"""

from typing import Any

from blogstore import serialization

_COMPARISONS = {"==": "=", "=": "=", "!=": "<>", "<>": "<>"}


class DocumentQueryBuilder:
    """
    Simple query builder for SELECT statements on a document table.

    Usage:
        builder = DocumentQueryBuilder("users")
        query, params = builder.where("name", "==", "alice").limit(1).build()
    """

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.select_fields = "id, data"
        self.where_conditions: list[str] = []
        self.params: list[Any] = []
        self.order_by_parts: list[str] = []
        self.limit_count: int | None = None

    def _clone(self) -> "DocumentQueryBuilder":
        """Create a copy of the current builder instance"""
        new_builder = DocumentQueryBuilder(self.table_name)
        new_builder.select_fields = self.select_fields
        new_builder.where_conditions = self.where_conditions.copy()
        new_builder.params = self.params.copy()
        new_builder.order_by_parts = self.order_by_parts.copy()
        new_builder.limit_count = self.limit_count
        return new_builder

    def _add_param(self, value: Any) -> str:
        """Append a parameter and return its placeholder"""
        self.params.append(value)
        return f"${len(self.params)}"

    def select(self, *fields: str) -> "DocumentQueryBuilder":
        """Set the SELECT fields; defaults to ``id, data`` when none is provided."""
        new_builder = self._clone()
        new_builder.select_fields = ", ".join(fields) if fields else "id, data"
        return new_builder

    def where(self, field: Any, *args: Any) -> "DocumentQueryBuilder":
        """Add a WHERE condition on a document field.

        Supports both of the following call styles:
        - where(field, value) -> operator defaults to '=='
        - where(field, operator, value) -> explicit operator in the second place

        Supported operators: '==', '!=', 'in'.
        """
        if len(args) == 2:
            operator, value = args
        elif len(args) == 1:
            operator, value = "==", args[0]
        else:
            raise TypeError(
                "where() expects (field, value) or (field, operator, value)"
            )

        if operator == "in":
            return self.where_in(field, value)
        if operator not in _COMPARISONS:
            raise ValueError(f"Unsupported query operator: {operator!r}")

        new_builder = self._clone()
        field_param = new_builder._add_param(str(field))
        value_param = new_builder._add_param(serialization.dumps(value))
        new_builder.where_conditions.append(
            f"data -> {field_param}::text {_COMPARISONS[operator]} {value_param}::jsonb"
        )
        return new_builder

    def where_in(self, field: Any, values: list[Any]) -> "DocumentQueryBuilder":
        """Add a WHERE condition matching any of ``values``"""
        new_builder = self._clone()
        field_param = new_builder._add_param(str(field))
        values_param = new_builder._add_param(serialization.dumps(list(values)))
        new_builder.where_conditions.append(
            f"data -> {field_param}::text IN "
            f"(SELECT jsonb_array_elements({values_param}::jsonb))"
        )
        return new_builder

    def where_id(self, doc_id: str) -> "DocumentQueryBuilder":
        """Add a WHERE condition on the document ID"""
        new_builder = self._clone()
        new_builder.where_conditions.append(f"id = {new_builder._add_param(doc_id)}")
        return new_builder

    def order_by(self, field: Any) -> "DocumentQueryBuilder":
        """Add ORDER BY ascending for a field (default). Chain to add multiple fields.

        Documents missing the field are excluded.
        """
        return self._add_order(field, descending=False)

    def order_by_desc(self, field: Any) -> "DocumentQueryBuilder":
        """Add an ORDER BY ... DESC on the given field. Documents missing it are excluded."""
        return self._add_order(field, descending=True)

    def _add_order(self, field: Any, descending: bool) -> "DocumentQueryBuilder":
        new_builder = self._clone()
        field_param = new_builder._add_param(str(field))
        new_builder.where_conditions.append(f"data ? {field_param}::text")
        direction = " DESC" if descending else ""
        new_builder.order_by_parts.append(f"data -> {field_param}::text{direction}")
        return new_builder

    def order_by_id(self) -> "DocumentQueryBuilder":
        """Add ORDER BY on the document ID"""
        new_builder = self._clone()
        new_builder.order_by_parts.append("id")
        return new_builder

    def limit(self, count: int) -> "DocumentQueryBuilder":
        """Set the LIMIT clause"""
        if count < 0:
            raise ValueError("Limit must be 0 or greater")
        new_builder = self._clone()
        new_builder.limit_count = count
        return new_builder

    def build(self) -> tuple[str, list[Any]]:
        """Build the final SQL query and parameters"""
        query_parts = [f"SELECT {self.select_fields} FROM {self.table_name}"]

        if self.where_conditions:
            query_parts.append(f"WHERE {' AND '.join(self.where_conditions)}")

        if self.order_by_parts:
            query_parts.append(f"ORDER BY {', '.join(self.order_by_parts)}")

        if self.limit_count is not None:
            query_parts.append(f"LIMIT {self.limit_count}")

        return " ".join(query_parts), self.params

    def to_sql(self) -> str:
        """Return only the SQL query string without parameters"""
        query, _ = self.build()
        return query

    def __str__(self) -> str:
        """String representation showing the built query"""
        query, params = self.build()
        return f"Query: {query}\nParams: {params}"
