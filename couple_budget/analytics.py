"""Budget aggregation and spending analytics.

This module turns the in-memory collections (transactions, recurring
expenses, savings goals, budgets and salaries) into the read-side figures
shown on the dashboard: monthly spending per category, budget progress,
monthly-equivalent recurring costs and the remaining disposable income.
Nothing here mutates state; every figure is recomputed on each call.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Any

import numpy as np
import pandas as pd

from .goals import monthly_savings_total
from .models import (
    Budgets,
    Payer,
    RecurringExpense,
    Salaires,
    SavingsGoal,
    Transaction,
    TransactionCategory,
)
from .recurring import monthly_recurring_total

TRANSACTION_COLUMNS = ['id', 'Transaction Date', 'Description', 'Category', 'Amount', 'Payer']


def transactions_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Tabular view of transactions with year/month helper columns."""
    rows = [
        {
            'id': t.id,
            'Transaction Date': t.date,
            'Description': t.description,
            'Category': TransactionCategory(t.category).value,
            'Amount': t.amount,
            'Payer': Payer(t.payer).value,
        }
        for t in transactions
    ]
    df = pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)
    df['Transaction Date'] = pd.to_datetime(df['Transaction Date'])
    df['Amount'] = pd.to_numeric(df['Amount'], errors='coerce').fillna(0.0)
    df['Year'] = df['Transaction Date'].dt.year
    df['Month'] = df['Transaction Date'].dt.month
    return df


class BudgetAggregator:
    """Read-side projections over the current budget state."""

    def __init__(
        self,
        transactions: Iterable[Transaction],
        recurring_expenses: Iterable[RecurringExpense] = (),
        savings_goals: Iterable[SavingsGoal] = (),
        budgets: Optional[Budgets] = None,
        salaires: Optional[Salaires] = None,
        today: Optional[date] = None,
    ):
        self.data = transactions_frame(transactions)
        self.recurring_expenses = list(recurring_expenses)
        self.savings_goals = list(savings_goals)
        self.budgets = budgets or Budgets()
        self.salaires = salaires or Salaires()
        self.today = today or date.today()

    def _month_rows(self, month: Optional[int] = None, year: Optional[int] = None) -> pd.DataFrame:
        month = month or self.today.month
        year = year or self.today.year
        return self.data[(self.data['Year'] == year) & (self.data['Month'] == month)]

    # ------------------------------------------------------------------
    # Income
    # ------------------------------------------------------------------

    def total_income(self) -> float:
        return float(self.salaires.total)

    def income_shares(self) -> Dict[str, float]:
        """Each person's share of household income, in percent."""
        total = self.total_income()
        if total <= 0:
            return {'pilou': 0.0, 'doudou': 0.0}
        return {
            'pilou': self.salaires.pilou / total * 100,
            'doudou': self.salaires.doudou / total * 100,
        }

    def total_budgets(self) -> float:
        return float(self.budgets.total_amount)

    def redistribution_remainder(self) -> float:
        """Income left once every category budget is funded."""
        return self.total_income() - self.total_budgets()

    def redistribution(self) -> Dict[str, float]:
        """Split the unbudgeted remainder proportionally to each income."""
        total = self.total_income()
        if total <= 0:
            return {'pilou': 0.0, 'doudou': 0.0}
        remainder = self.redistribution_remainder()
        return {
            'pilou': remainder * self.salaires.pilou / total,
            'doudou': remainder * self.salaires.doudou / total,
        }

    # ------------------------------------------------------------------
    # Spending
    # ------------------------------------------------------------------

    def category_spending(
        self,
        category: TransactionCategory,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> float:
        """Sum of transactions in ``category`` for the given calendar month."""
        rows = self._month_rows(month, year)
        rows = rows[rows['Category'] == TransactionCategory(category).value]
        return float(rows['Amount'].sum())

    def current_month_spending(self) -> float:
        return float(self._month_rows()['Amount'].sum())

    def budget_progress(self, category: TransactionCategory) -> float:
        """Share of the category budget consumed this month, clamped to 1.0."""
        budget = self.budgets.for_category(category)
        if budget <= 0:
            return 0.0
        return min(self.category_spending(category) / budget, 1.0)

    def category_breakdown(self, month: Optional[int] = None, year: Optional[int] = None) -> pd.Series:
        """Spending per category for a month, every category present."""
        rows = self._month_rows(month, year)
        totals = rows.groupby('Category')['Amount'].sum()
        index = [c.value for c in TransactionCategory]
        return totals.reindex(index, fill_value=0.0).astype(float)

    def budget_overview(self, month: Optional[int] = None, year: Optional[int] = None) -> pd.DataFrame:
        """Budget vs actual per category."""
        spent = self.category_breakdown(month, year)
        budget = pd.Series(self.budgets.as_dict(), dtype=float).reindex(spent.index, fill_value=0.0)
        overview = pd.DataFrame({'Budget': budget, 'Spent': spent})
        overview['Remaining'] = overview['Budget'] - overview['Spent']
        ratio = overview['Spent'] / overview['Budget'].replace(0, np.nan)
        overview['Progress'] = ratio.fillna(0.0).clip(upper=1.0)
        overview['Over Budget'] = overview['Spent'] > overview['Budget']
        return overview

    def payer_totals(self) -> Dict[str, float]:
        """All-time spending per payer, payers with no spending omitted."""
        if self.data.empty:
            return {}
        totals = self.data.groupby('Payer')['Amount'].sum()
        return {payer: float(amount) for payer, amount in totals.items() if amount > 0}

    def monthly_history(self, months: Optional[int] = None) -> pd.DataFrame:
        """Spending per calendar month, oldest first."""
        if self.data.empty:
            return pd.DataFrame(columns=['Month', 'Spending'])
        periods = self.data['Transaction Date'].dt.to_period('M')
        history = self.data.groupby(periods)['Amount'].sum().sort_index()
        if months:
            history = history.tail(months)
        return pd.DataFrame({'Month': history.index.astype(str), 'Spending': history.values})

    def average_monthly_spending(self) -> float:
        history = self.monthly_history()
        if history.empty:
            return 0.0
        return float(np.mean(history['Spending']))

    # ------------------------------------------------------------------
    # Commitments
    # ------------------------------------------------------------------

    def total_monthly_recurring(self) -> float:
        return monthly_recurring_total(self.recurring_expenses)

    def total_monthly_savings_goals(self) -> float:
        return monthly_savings_total(self.savings_goals)

    def remaining_disposable(self) -> float:
        return (
            self.total_income()
            - self.current_month_spending()
            - self.total_monthly_recurring()
            - self.total_monthly_savings_goals()
        )

    def over_budget_categories(self) -> List[str]:
        overview = self.budget_overview()
        return list(overview.index[overview['Over Budget'].to_numpy()])

    def monthly_summary(self) -> Dict[str, Any]:
        return {
            'month': f"{self.today.year:04d}-{self.today.month:02d}",
            'total_income': self.total_income(),
            'income_shares': self.income_shares(),
            'total_budgets': self.total_budgets(),
            'redistribution': self.redistribution(),
            'current_month_spending': self.current_month_spending(),
            'total_monthly_recurring': self.total_monthly_recurring(),
            'total_monthly_savings_goals': self.total_monthly_savings_goals(),
            'remaining_disposable': self.remaining_disposable(),
            'budget_progress': {
                c.value: self.budget_progress(c) for c in TransactionCategory
            },
            'over_budget': self.over_budget_categories(),
        }
