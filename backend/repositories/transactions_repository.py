"""Transactions repository adapters.

Every read and write is scoped by `user_id`; a row owned by someone else is
indistinguishable from a missing row.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Literal, Protocol
from uuid import UUID, uuid4

from backend.db.supabase_client import SupabaseClient
from shared.models import SortField, Transaction, TransactionFields, TransactionFilters


DistinctField = Literal["category", "payment_method", "tags"]

_SORT_COLUMNS: dict[str, str] = {
    "date": "date",
    "amount": "amount",
    "category": "category",
    "description": "description",
    "type": "type",
    "createdAt": "created_at",
}
_SELECT_COLUMNS = (
    "id,user_id,date,description,amount,category,type,tags,notes,"
    "payment_method,is_recurring,recurring_details,created_at,updated_at"
)
# PostgREST truncates unpaged reads at `db-max-rows`; full scans go in batches.
SCAN_BATCH_SIZE = 1000


class TransactionsRepository(Protocol):
    def list_transactions(
        self,
        filters: TransactionFilters,
        *,
        sort_by: SortField,
        descending: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        """Return one sorted page of matching transactions and the total match count."""

    def find_transactions(self, filters: TransactionFilters) -> list[Transaction]:
        """Return every matching transaction, unordered."""

    def get_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | None:
        """Return the transaction when it exists and belongs to `user_id`."""

    def insert_transaction(self, *, user_id: UUID, fields: TransactionFields) -> Transaction:
        """Persist a validated transaction for `user_id`."""

    def update_transaction(
        self, *, user_id: UUID, transaction_id: UUID, fields: TransactionFields
    ) -> Transaction | None:
        """Overwrite editable fields; None when no owned row matched."""

    def delete_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | None:
        """Delete and return the prior state; None when no owned row matched."""

    def distinct_values(self, *, user_id: UUID, field: DistinctField) -> list[str]:
        """Return sorted distinct values of `field` across the user's transactions."""

    def close(self) -> None:
        """Release the underlying storage handle."""


def _contains(haystack: str, needle: str) -> bool:
    return needle.casefold() in haystack.casefold()


def escape_like(value: str) -> str:
    """Escape LIKE metacharacters so user input matches literally.

    PostgREST rewrites `*` to `%`, so a literal star is narrowed to the
    single-character wildcard.
    """

    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "_")


class InMemoryTransactionsRepository:
    """In-memory repository used by tests and local development.

    Sync FastAPI handlers run in a threadpool, so `_rows` is only touched
    under `_lock`.
    """

    def __init__(self, seed: list[Transaction] | None = None) -> None:
        self._rows: dict[UUID, Transaction] = {row.id: row for row in seed or []}
        self._lock = threading.Lock()

    def _snapshot(self, user_id: UUID) -> list[Transaction]:
        with self._lock:
            return [row for row in self._rows.values() if row.user_id == user_id]

    def _owned_row(self, user_id: UUID, transaction_id: UUID) -> Transaction | None:
        row = self._rows.get(transaction_id)
        if row is None or row.user_id != user_id:
            return None
        return row

    def _filter_rows(self, filters: TransactionFilters) -> list[Transaction]:
        rows = self._snapshot(filters.user_id)
        if filters.start_date is not None:
            rows = [row for row in rows if row.date >= filters.start_date]
        if filters.end_date is not None:
            rows = [row for row in rows if row.date <= filters.end_date]
        if filters.category:
            rows = [row for row in rows if _contains(row.category, filters.category)]
        if filters.type is not None:
            rows = [row for row in rows if row.type == filters.type]
        if filters.description:
            rows = [row for row in rows if _contains(row.description, filters.description)]
        return rows

    @staticmethod
    def _sort_key(sort_by: SortField):
        attribute = _SORT_COLUMNS[sort_by]

        def key(row: Transaction):
            value = getattr(row, attribute)
            if attribute == "type":
                value = value.value
            if value is None:
                value = datetime.min.replace(tzinfo=timezone.utc)
            return value, str(row.id)

        return key

    def list_transactions(
        self,
        filters: TransactionFilters,
        *,
        sort_by: SortField,
        descending: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        rows = sorted(self._filter_rows(filters), key=self._sort_key(sort_by), reverse=descending)
        return rows[offset : offset + limit], len(rows)

    def find_transactions(self, filters: TransactionFilters) -> list[Transaction]:
        return self._filter_rows(filters)

    def get_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | None:
        with self._lock:
            return self._owned_row(user_id, transaction_id)

    def insert_transaction(self, *, user_id: UUID, fields: TransactionFields) -> Transaction:
        now = datetime.now(timezone.utc)
        transaction = Transaction.model_validate(
            {
                **fields.model_dump(),
                "id": uuid4(),
                "user_id": user_id,
                "created_at": now,
                "updated_at": now,
            }
        )
        with self._lock:
            self._rows[transaction.id] = transaction
        return transaction

    def update_transaction(
        self, *, user_id: UUID, transaction_id: UUID, fields: TransactionFields
    ) -> Transaction | None:
        with self._lock:
            current = self._owned_row(user_id, transaction_id)
            if current is None:
                return None
            updated = Transaction.model_validate(
                {
                    **fields.model_dump(),
                    "id": current.id,
                    "user_id": current.user_id,
                    "created_at": current.created_at,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self._rows[transaction_id] = updated
        return updated

    def delete_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | None:
        with self._lock:
            current = self._owned_row(user_id, transaction_id)
            if current is None:
                return None
            del self._rows[transaction_id]
        return current

    def distinct_values(self, *, user_id: UUID, field: DistinctField) -> list[str]:
        values: set[str] = set()
        for row in self._snapshot(user_id):
            if field == "tags":
                values.update(row.tags)
            elif field == "payment_method":
                values.add(row.payment_method.value)
            else:
                values.add(row.category)
        return sorted(values)

    def close(self) -> None:
        return None


class SupabaseTransactionsRepository:
    """Supabase repository over a PostgREST `transactions` table."""

    def __init__(self, client: SupabaseClient, table: str = "transactions") -> None:
        self._client = client
        self._table = table

    def _build_query(self, filters: TransactionFilters) -> list[tuple[str, str | int]]:
        query: list[tuple[str, str | int]] = [("user_id", f"eq.{filters.user_id}")]

        if filters.start_date is not None:
            query.append(("date", f"gte.{filters.start_date.isoformat()}"))
        if filters.end_date is not None:
            query.append(("date", f"lte.{filters.end_date.isoformat()}"))
        if filters.category:
            query.append(("category", f"ilike.*{escape_like(filters.category)}*"))
        if filters.type is not None:
            query.append(("type", f"eq.{filters.type.value}"))
        if filters.description:
            query.append(("description", f"ilike.*{escape_like(filters.description)}*"))

        return query

    @staticmethod
    def _owned(user_id: UUID, transaction_id: UUID) -> list[tuple[str, str | int]]:
        return [("id", f"eq.{transaction_id}"), ("user_id", f"eq.{user_id}")]

    @staticmethod
    def _parse_row(row: dict[str, object]) -> Transaction:
        for required in ("id", "user_id"):
            if row.get(required) is None:
                raise ValueError(f"Missing required field '{required}' in transaction row")
        return Transaction.model_validate({**row, "tags": row.get("tags") or []})

    @staticmethod
    def _serialize(fields: TransactionFields) -> dict[str, object]:
        return fields.model_dump(mode="json")

    def list_transactions(
        self,
        filters: TransactionFilters,
        *,
        sort_by: SortField,
        descending: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        direction = "desc" if descending else "asc"
        query = [
            *self._build_query(filters),
            ("select", _SELECT_COLUMNS),
            ("order", f"{_SORT_COLUMNS[sort_by]}.{direction},id.{direction}"),
            ("limit", limit),
            ("offset", offset),
        ]
        rows, total = self._client.get_rows(table=self._table, query=query, with_count=True)
        items = [self._parse_row(row) for row in rows]
        if total is None:
            total = offset + len(items)
        return items, total

    def _scan_rows(self, query: list[tuple[str, str | int]]) -> list[dict[str, object]]:
        """Read every matching row, advancing the offset by what each batch returned.

        The server may cap a batch below `SCAN_BATCH_SIZE`, so only an empty
        batch ends the scan.
        """

        rows: list[dict[str, object]] = []
        offset = 0
        while True:
            batch, _ = self._client.get_rows(
                table=self._table,
                query=[*query, ("order", "id.asc"), ("limit", SCAN_BATCH_SIZE), ("offset", offset)],
                with_count=False,
            )
            if not batch:
                return rows
            rows.extend(batch)
            offset += len(batch)

    def find_transactions(self, filters: TransactionFilters) -> list[Transaction]:
        rows = self._scan_rows([*self._build_query(filters), ("select", _SELECT_COLUMNS)])
        return [self._parse_row(row) for row in rows]

    def get_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | None:
        query = [*self._owned(user_id, transaction_id), ("select", _SELECT_COLUMNS), ("limit", 1)]
        rows, _ = self._client.get_rows(table=self._table, query=query, with_count=False)
        if not rows:
            return None
        return self._parse_row(rows[0])

    def insert_transaction(self, *, user_id: UUID, fields: TransactionFields) -> Transaction:
        now = datetime.now(timezone.utc).isoformat()
        rows = self._client.post_rows(
            table=self._table,
            query={"select": _SELECT_COLUMNS},
            payload={
                **self._serialize(fields),
                "id": str(uuid4()),
                "user_id": str(user_id),
                "created_at": now,
                "updated_at": now,
            },
        )
        if not rows:
            raise RuntimeError("Supabase did not return created transaction")
        return self._parse_row(rows[0])

    def update_transaction(
        self, *, user_id: UUID, transaction_id: UUID, fields: TransactionFields
    ) -> Transaction | None:
        rows = self._client.patch_rows(
            table=self._table,
            query=[*self._owned(user_id, transaction_id), ("select", _SELECT_COLUMNS)],
            payload={
                **self._serialize(fields),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        if not rows:
            return None
        return self._parse_row(rows[0])

    def delete_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | None:
        rows = self._client.delete_rows(
            table=self._table,
            query=[*self._owned(user_id, transaction_id), ("select", _SELECT_COLUMNS)],
        )
        if not rows:
            return None
        return self._parse_row(rows[0])

    def distinct_values(self, *, user_id: UUID, field: DistinctField) -> list[str]:
        rows = self._scan_rows([("user_id", f"eq.{user_id}"), ("select", field)])
        values: set[str] = set()
        for row in rows:
            raw_value = row.get(field)
            if field == "tags":
                values.update(str(tag) for tag in raw_value or [])
            elif raw_value is not None:
                values.add(str(raw_value))
        return sorted(values)

    def close(self) -> None:
        self._client.close()
