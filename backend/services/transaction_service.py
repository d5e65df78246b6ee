"""Transaction query and aggregation service.

Every method takes the authenticated owner id separately from client input
and returns either a result model or a `ToolError`. Storage failures are
logged here and surfaced with a generic message only.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from backend.repositories.transactions_repository import DistinctField, TransactionsRepository
from backend.services.transaction_stats import (
    summarize_by_category,
    summarize_by_month,
    summarize_by_type,
)
from backend.services.transaction_validation import (
    field_errors_from,
    merge_update,
    validate_transaction_fields,
)
from shared.models import (
    CategoryStat,
    CategoryStatsQuery,
    FieldError,
    MonthlyStat,
    MonthlyStatsQuery,
    Pagination,
    ToolError,
    ToolErrorCode,
    Transaction,
    TransactionFilters,
    TransactionListQuery,
    TransactionPage,
    TransactionStatsQuery,
    TypeStats,
)


logger = logging.getLogger(__name__)

_QueryT = TypeVar("_QueryT", bound=BaseModel)

NOT_FOUND_MESSAGE = "Transaction not found"
VALIDATION_MESSAGE = "Validation failed"


def _validation_error(errors: list[FieldError]) -> ToolError:
    return ToolError(code=ToolErrorCode.VALIDATION_ERROR, message=VALIDATION_MESSAGE, errors=errors)


def _not_found() -> ToolError:
    return ToolError(code=ToolErrorCode.NOT_FOUND, message=NOT_FOUND_MESSAGE)


def _backend_error(message: str) -> ToolError:
    return ToolError(code=ToolErrorCode.BACKEND_ERROR, message=message)


def _parse_query(model: type[_QueryT], params: Mapping[str, object]) -> _QueryT | ToolError:
    try:
        return model.model_validate(dict(params))
    except ValidationError as exc:
        return _validation_error(field_errors_from(exc))


@dataclass(slots=True)
class TransactionService:
    repository: TransactionsRepository

    def close(self) -> None:
        self.repository.close()

    def list_transactions(
        self, *, user_id: UUID, params: Mapping[str, object]
    ) -> TransactionPage | ToolError:
        query = _parse_query(TransactionListQuery, params)
        if isinstance(query, ToolError):
            return query

        filters = TransactionFilters(
            user_id=user_id,
            start_date=query.start_date,
            end_date=query.end_date,
            category=query.category,
            type=query.type,
            description=query.description,
        )
        try:
            items, total = self.repository.list_transactions(
                filters,
                sort_by=query.sort_by,
                descending=query.sort_order == "desc",
                limit=query.limit,
                offset=query.offset,
            )
        except Exception:
            logger.exception("transactions_list_failed user_id=%s", user_id)
            return _backend_error("Server error while fetching transactions")

        return TransactionPage(
            transactions=items,
            pagination=Pagination.build(page=query.page, limit=query.limit, total=total),
        )

    def get_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | ToolError:
        try:
            transaction = self.repository.get_transaction(user_id=user_id, transaction_id=transaction_id)
        except Exception:
            logger.exception(
                "transaction_get_failed user_id=%s transaction_id=%s", user_id, transaction_id
            )
            return _backend_error("Server error while fetching transaction")

        if transaction is None:
            return _not_found()
        return transaction

    def create_transaction(self, *, user_id: UUID, payload: object) -> Transaction | ToolError:
        outcome = validate_transaction_fields(payload)
        if not outcome.ok:
            return _validation_error(outcome.errors)

        try:
            transaction = self.repository.insert_transaction(user_id=user_id, fields=outcome.value)
        except Exception:
            logger.exception("transaction_create_failed user_id=%s", user_id)
            return _backend_error("Server error while adding transaction")

        logger.info("transaction_created user_id=%s transaction_id=%s", user_id, transaction.id)
        return transaction

    def update_transaction(
        self, *, user_id: UUID, transaction_id: UUID, payload: object
    ) -> Transaction | ToolError:
        if not isinstance(payload, Mapping):
            return _validation_error([FieldError(field="body", message="Expected a JSON object")])

        try:
            current = self.repository.get_transaction(user_id=user_id, transaction_id=transaction_id)
        except Exception:
            logger.exception(
                "transaction_update_lookup_failed user_id=%s transaction_id=%s", user_id, transaction_id
            )
            return _backend_error("Server error while updating transaction")

        if current is None:
            return _not_found()

        outcome = validate_transaction_fields(merge_update(current, payload))
        if not outcome.ok:
            return _validation_error(outcome.errors)

        try:
            updated = self.repository.update_transaction(
                user_id=user_id,
                transaction_id=transaction_id,
                fields=outcome.value,
            )
        except Exception:
            logger.exception(
                "transaction_update_failed user_id=%s transaction_id=%s", user_id, transaction_id
            )
            return _backend_error("Server error while updating transaction")

        # Deleted between lookup and write.
        if updated is None:
            return _not_found()
        return updated

    def delete_transaction(self, *, user_id: UUID, transaction_id: UUID) -> Transaction | ToolError:
        try:
            deleted = self.repository.delete_transaction(user_id=user_id, transaction_id=transaction_id)
        except Exception:
            logger.exception(
                "transaction_delete_failed user_id=%s transaction_id=%s", user_id, transaction_id
            )
            return _backend_error("Server error while deleting transaction")

        if deleted is None:
            return _not_found()
        logger.info("transaction_deleted user_id=%s transaction_id=%s", user_id, transaction_id)
        return deleted

    def type_stats(self, *, user_id: UUID, params: Mapping[str, object]) -> TypeStats | ToolError:
        query = _parse_query(TransactionStatsQuery, params)
        if isinstance(query, ToolError):
            return query

        filters = TransactionFilters(user_id=user_id, start_date=query.start_date, end_date=query.end_date)
        try:
            rows = self.repository.find_transactions(filters)
        except Exception:
            logger.exception("transaction_stats_failed user_id=%s", user_id)
            return _backend_error("Server error while fetching statistics")
        return summarize_by_type(rows)

    def category_stats(
        self, *, user_id: UUID, params: Mapping[str, object]
    ) -> list[CategoryStat] | ToolError:
        query = _parse_query(CategoryStatsQuery, params)
        if isinstance(query, ToolError):
            return query

        filters = TransactionFilters(
            user_id=user_id,
            start_date=query.start_date,
            end_date=query.end_date,
            type=query.type,
        )
        try:
            rows = self.repository.find_transactions(filters)
        except Exception:
            logger.exception("category_stats_failed user_id=%s", user_id)
            return _backend_error("Server error while fetching category statistics")
        return summarize_by_category(rows)

    def monthly_stats(
        self, *, user_id: UUID, params: Mapping[str, object]
    ) -> list[MonthlyStat] | ToolError:
        query = _parse_query(MonthlyStatsQuery, params)
        if isinstance(query, ToolError):
            return query

        filters = TransactionFilters(user_id=user_id)
        if query.year is not None:
            filters = TransactionFilters(
                user_id=user_id,
                start_date=date(query.year, 1, 1),
                end_date=date(query.year, 12, 31),
            )
        try:
            rows = self.repository.find_transactions(filters)
        except Exception:
            logger.exception("monthly_stats_failed user_id=%s year=%s", user_id, query.year)
            return _backend_error("Server error while fetching monthly statistics")
        return summarize_by_month(rows)

    def distinct_values(self, *, user_id: UUID, field: DistinctField) -> list[str] | ToolError:
        try:
            return self.repository.distinct_values(user_id=user_id, field=field)
        except Exception:
            logger.exception("transaction_distinct_failed user_id=%s field=%s", user_id, field)
            return _backend_error("Server error while fetching transaction metadata")
