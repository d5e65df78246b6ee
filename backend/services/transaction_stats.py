"""Rollups over owner-scoped transactions: by type, by category, by month."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from shared.models import (
    CategoryStat,
    MonthlyStat,
    Transaction,
    TransactionType,
    TypeStats,
)


@dataclass(slots=True)
class _Rollup:
    total: Decimal = Decimal("0")
    count: int = 0

    def add(self, amount: Decimal) -> None:
        self.total += amount
        self.count += 1

    @property
    def average(self) -> Decimal:
        if self.count == 0:
            return Decimal("0")
        return self.total / self.count


def summarize_by_type(rows: Iterable[Transaction]) -> TypeStats:
    """Income/expense totals; an absent side reports zeros, never null."""

    groups: dict[TransactionType, _Rollup] = {}
    for row in rows:
        groups.setdefault(row.type, _Rollup()).add(row.amount)

    income = groups.get(TransactionType.INCOME, _Rollup())
    expense = groups.get(TransactionType.EXPENSE, _Rollup())
    return TypeStats(
        total_income=income.total,
        total_expense=expense.total,
        net_amount=income.total - expense.total,
        income_count=income.count,
        expense_count=expense.count,
        total_transactions=income.count + expense.count,
        average_income=income.average,
        average_expense=expense.average,
    )


def summarize_by_category(rows: Iterable[Transaction]) -> list[CategoryStat]:
    groups: dict[tuple[str, TransactionType], _Rollup] = {}
    for row in rows:
        groups.setdefault((row.category, row.type), _Rollup()).add(row.amount)

    ordered = sorted(
        groups.items(),
        key=lambda item: (-item[1].total, item[0][0], item[0][1].value),
    )
    return [
        CategoryStat(
            category=category,
            type=transaction_type,
            total=rollup.total,
            count=rollup.count,
            average=rollup.average,
        )
        for (category, transaction_type), rollup in ordered
    ]


def summarize_by_month(rows: Iterable[Transaction]) -> list[MonthlyStat]:
    """One entry per (year, month), ascending; both sides always present."""

    months: dict[tuple[int, int], dict[TransactionType, _Rollup]] = {}
    for row in rows:
        sides = months.setdefault(
            (row.date.year, row.date.month),
            {TransactionType.INCOME: _Rollup(), TransactionType.EXPENSE: _Rollup()},
        )
        sides[row.type].add(row.amount)

    result: list[MonthlyStat] = []
    for year, month in sorted(months):
        income = months[(year, month)][TransactionType.INCOME]
        expense = months[(year, month)][TransactionType.EXPENSE]
        result.append(
            MonthlyStat(
                year=year,
                month=month,
                income=income.total,
                expense=expense.total,
                income_count=income.count,
                expense_count=expense.count,
                net=income.total - expense.total,
                total_transactions=income.count + expense.count,
            )
        )
    return result
