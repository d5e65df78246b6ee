"""Contract tests for the transaction service over the in-memory repository."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from backend.repositories.transactions_repository import InMemoryTransactionsRepository
from backend.services.transaction_service import TransactionService
from shared.models import (
    ToolError,
    ToolErrorCode,
    Transaction,
    TransactionPage,
    TransactionType,
    TypeStats,
)
from tests.fakes import (
    OTHER_USER_ID,
    USER_ID,
    FailingTransactionsRepository,
    make_transaction,
)


def _service(rows: list[Transaction]) -> TransactionService:
    return TransactionService(repository=InMemoryTransactionsRepository(seed=rows))


def _daily_rows(count: int) -> list[Transaction]:
    start = date(2024, 1, 1)
    return [make_transaction(on=start + timedelta(days=index), amount=f"{index + 1}") for index in range(count)]


def test_list_is_scoped_to_owner() -> None:
    rows = [
        make_transaction(on=date(2024, 1, 1), amount="10"),
        make_transaction(on=date(2024, 1, 2), amount="20"),
        make_transaction(on=date(2024, 1, 3), amount="30", user_id=OTHER_USER_ID),
    ]
    service = _service(rows)

    result = service.list_transactions(user_id=USER_ID, params={})

    assert isinstance(result, TransactionPage)
    assert len(result.transactions) == 2
    assert all(item.user_id == USER_ID for item in result.transactions)
    assert result.pagination.total_transactions == 2


def test_list_defaults_to_date_descending() -> None:
    service = _service(_daily_rows(3))

    result = service.list_transactions(user_id=USER_ID, params={})

    assert [item.date for item in result.transactions] == [
        date(2024, 1, 3),
        date(2024, 1, 2),
        date(2024, 1, 1),
    ]


def test_pagination_metadata_uses_numeric_comparisons() -> None:
    service = _service(_daily_rows(95))

    second = service.list_transactions(user_id=USER_ID, params={"page": "2", "limit": "10"})
    last = service.list_transactions(user_id=USER_ID, params={"page": "10", "limit": "10"})

    assert second.pagination.total_pages == 10
    assert second.pagination.has_next_page is True
    assert second.pagination.has_prev_page is True
    assert len(second.transactions) == 10
    assert last.pagination.has_next_page is False
    assert len(last.transactions) == 5


def test_pagination_for_empty_result() -> None:
    service = _service([])

    result = service.list_transactions(user_id=USER_ID, params={})

    assert result.transactions == []
    assert result.pagination.total_pages == 0
    assert result.pagination.has_next_page is False
    assert result.pagination.has_prev_page is False


def test_filters_combine_date_range_type_and_substrings() -> None:
    rows = [
        make_transaction(on=date(2024, 1, 1), amount="10", category="Food", description="Corner Bakery"),
        make_transaction(on=date(2024, 1, 15), amount="20", category="Seafood", description="Fish market"),
        make_transaction(on=date(2024, 1, 31), amount="30", category="FOOD", description="bakery run"),
        make_transaction(on=date(2024, 2, 1), amount="40", category="Food", description="Bakery"),
        make_transaction(
            on=date(2024, 1, 20), amount="50", kind=TransactionType.INCOME, category="Food", description="bakery refund"
        ),
    ]
    service = _service(rows)

    result = service.list_transactions(
        user_id=USER_ID,
        params={
            "startDate": "2024-01-01",
            "endDate": "2024-01-31",
            "category": "food",
            "type": "Expense",
            "description": "BAKERY",
        },
    )

    assert sorted(item.amount for item in result.transactions) == [Decimal("10"), Decimal("30")]


def test_substring_filters_are_literal_not_patterns() -> None:
    rows = [
        make_transaction(on=date(2024, 1, 1), amount="10", category="Food"),
        make_transaction(on=date(2024, 1, 2), amount="20", category="Tech (.*)"),
    ]
    service = _service(rows)

    result = service.list_transactions(user_id=USER_ID, params={"category": ".*"})

    assert [item.category for item in result.transactions] == ["Tech (.*)"]


def test_sort_by_amount_ascending() -> None:
    rows = [
        make_transaction(on=date(2024, 1, 1), amount="30"),
        make_transaction(on=date(2024, 1, 2), amount="10"),
        make_transaction(on=date(2024, 1, 3), amount="20"),
    ]
    service = _service(rows)

    result = service.list_transactions(user_id=USER_ID, params={"sortBy": "amount", "sortOrder": "asc"})

    assert [item.amount for item in result.transactions] == [Decimal("10"), Decimal("20"), Decimal("30")]


def test_invalid_list_params_are_validation_errors() -> None:
    service = _service([])

    result = service.list_transactions(
        user_id=USER_ID,
        params={"limit": "101", "page": "0", "sortBy": "userId", "type": "Gift"},
    )

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.VALIDATION_ERROR
    assert sorted(error.field for error in result.errors) == ["limit", "page", "sortBy", "type"]


def test_foreign_transaction_is_not_found_for_get_update_and_delete() -> None:
    foreign = make_transaction(on=date(2024, 1, 1), amount="10", user_id=OTHER_USER_ID)
    service = _service([foreign])

    fetched = service.get_transaction(user_id=USER_ID, transaction_id=foreign.id)
    updated = service.update_transaction(user_id=USER_ID, transaction_id=foreign.id, payload={"amount": "1"})
    deleted = service.delete_transaction(user_id=USER_ID, transaction_id=foreign.id)
    missing = service.get_transaction(user_id=USER_ID, transaction_id=uuid4())

    for result in (fetched, updated, deleted):
        assert isinstance(result, ToolError)
        assert result.code == ToolErrorCode.NOT_FOUND
        assert result == missing

    untouched = service.get_transaction(user_id=OTHER_USER_ID, transaction_id=foreign.id)
    assert untouched.amount == Decimal("10")


def test_create_then_partial_update() -> None:
    service = _service([])

    created = service.create_transaction(
        user_id=USER_ID,
        payload={
            "date": "2024-01-10",
            "description": "Groceries",
            "amount": 40,
            "category": "Food",
            "type": "Expense",
            "tags": ["weekly"],
        },
    )
    assert isinstance(created, Transaction)
    assert created.user_id == USER_ID

    updated = service.update_transaction(
        user_id=USER_ID,
        transaction_id=created.id,
        payload={"amount": "42.50"},
    )

    assert isinstance(updated, Transaction)
    assert updated.amount == Decimal("42.50")
    assert updated.description == "Groceries"
    assert updated.tags == ["weekly"]
    assert updated.created_at == created.created_at


def test_update_with_invalid_merged_record_is_rejected() -> None:
    existing = make_transaction(on=date(2024, 1, 1), amount="10")
    service = _service([existing])

    result = service.update_transaction(user_id=USER_ID, transaction_id=existing.id, payload={"type": "Loan"})

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.VALIDATION_ERROR
    assert [error.field for error in result.errors] == ["type"]


def test_delete_returns_prior_state() -> None:
    existing = make_transaction(on=date(2024, 1, 1), amount="10", description="Coffee")
    service = _service([existing])

    deleted = service.delete_transaction(user_id=USER_ID, transaction_id=existing.id)
    after = service.get_transaction(user_id=USER_ID, transaction_id=existing.id)

    assert deleted == existing
    assert isinstance(after, ToolError)
    assert after.code == ToolErrorCode.NOT_FOUND


def test_create_recurring_computes_next_due_date() -> None:
    service = _service([])

    created = service.create_transaction(
        user_id=USER_ID,
        payload={
            "date": "2024-01-15",
            "description": "Rent",
            "amount": "900",
            "category": "Housing",
            "type": "Expense",
            "isRecurring": True,
            "recurringDetails": {"frequency": "monthly"},
        },
    )

    assert isinstance(created, Transaction)
    assert created.recurring_details.next_due_date == date(2024, 2, 15)


def test_type_stats_scenario_for_date_range() -> None:
    rows = [
        make_transaction(on=date(2024, 1, 5), amount="100", kind=TransactionType.INCOME, category="Salary"),
        make_transaction(on=date(2024, 1, 10), amount="40"),
        make_transaction(on=date(2024, 2, 1), amount="999"),
        make_transaction(on=date(2024, 1, 7), amount="5000", kind=TransactionType.INCOME, user_id=OTHER_USER_ID),
    ]
    service = _service(rows)

    stats = service.type_stats(user_id=USER_ID, params={"startDate": "2024-01-01", "endDate": "2024-01-31"})

    assert isinstance(stats, TypeStats)
    assert stats.total_income == Decimal("100")
    assert stats.total_expense == Decimal("40")
    assert stats.net_amount == Decimal("60")
    assert stats.total_transactions == 2


def test_category_stats_respects_type_filter() -> None:
    rows = [
        make_transaction(on=date(2024, 1, 5), amount="100", kind=TransactionType.INCOME, category="Salary"),
        make_transaction(on=date(2024, 1, 10), amount="40", category="Food"),
        make_transaction(on=date(2024, 1, 11), amount="60", category="Transport"),
    ]
    service = _service(rows)

    stats = service.category_stats(user_id=USER_ID, params={"type": "Expense"})

    assert [(item.category, item.total) for item in stats] == [
        ("Transport", Decimal("60")),
        ("Food", Decimal("40")),
    ]


def test_monthly_stats_restricts_to_year() -> None:
    rows = [
        make_transaction(on=date(2023, 12, 31), amount="10"),
        make_transaction(on=date(2024, 1, 1), amount="20"),
        make_transaction(on=date(2024, 12, 31), amount="30", kind=TransactionType.INCOME),
    ]
    service = _service(rows)

    stats = service.monthly_stats(user_id=USER_ID, params={"year": "2024"})
    empty = service.monthly_stats(user_id=USER_ID, params={"year": "2020"})

    assert [(item.year, item.month) for item in stats] == [(2024, 1), (2024, 12)]
    assert stats[1].expense == Decimal("0")
    assert stats[1].expense_count == 0
    assert empty == []


def test_distinct_values_are_owner_scoped() -> None:
    rows = [
        make_transaction(on=date(2024, 1, 1), amount="10", category="Food", tags=["home", "weekly"]),
        make_transaction(on=date(2024, 1, 2), amount="10", category="Travel", tags=["weekly"]),
        make_transaction(on=date(2024, 1, 3), amount="10", category="Secret", user_id=OTHER_USER_ID),
    ]
    service = _service(rows)

    assert service.distinct_values(user_id=USER_ID, field="category") == ["Food", "Travel"]
    assert service.distinct_values(user_id=USER_ID, field="tags") == ["home", "weekly"]
    assert service.distinct_values(user_id=USER_ID, field="payment_method") == ["Cash"]


def test_storage_failures_surface_generic_backend_errors() -> None:
    service = TransactionService(repository=FailingTransactionsRepository())

    results = [
        service.list_transactions(user_id=USER_ID, params={}),
        service.get_transaction(user_id=USER_ID, transaction_id=uuid4()),
        service.type_stats(user_id=USER_ID, params={}),
        service.monthly_stats(user_id=USER_ID, params={}),
    ]

    for result in results:
        assert isinstance(result, ToolError)
        assert result.code == ToolErrorCode.BACKEND_ERROR
        assert "db down" not in result.message
    assert results[0].message == "Server error while fetching transactions"
