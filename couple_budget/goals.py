"""Savings goal bookkeeping: contributions, cascade deletes and goal analytics."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .models import (
    GoalPriority,
    GoalStatus,
    SavingsContribution,
    SavingsGoal,
    months_between,
)

HISTORY_MONTHS = 6


def apply_contribution(
    goal: SavingsGoal,
    amount: float,
    note: Optional[str] = None,
    when: Optional[date] = None,
) -> Tuple[SavingsContribution, SavingsGoal]:
    """Return the ledger entry and the goal with its current amount bumped.

    Both values belong to one logical change and must be committed together.
    """
    contribution = SavingsContribution(
        goal_id=goal.id,
        amount=amount,
        date=when or date.today(),
        note=note or None,
    )
    return contribution, replace(goal, current_amount=goal.current_amount + amount)


def contributions_for_goal(
    contributions: Iterable[SavingsContribution],
    goal_id: str,
) -> List[SavingsContribution]:
    """Contribution history for one goal, newest first."""
    matching = [c for c in contributions if c.goal_id == goal_id]
    return sorted(matching, key=lambda c: c.date, reverse=True)


def remove_goal(
    goals: Iterable[SavingsGoal],
    contributions: Iterable[SavingsContribution],
    goal_id: str,
) -> Tuple[List[SavingsGoal], List[SavingsContribution], List[SavingsContribution]]:
    """Drop a goal and every contribution that references it.

    Returns (remaining goals, remaining contributions, removed contributions).
    """
    remaining_goals = [g for g in goals if g.id != goal_id]
    kept: List[SavingsContribution] = []
    removed: List[SavingsContribution] = []
    for contribution in contributions:
        (removed if contribution.goal_id == goal_id else kept).append(contribution)
    return remaining_goals, kept, removed


def monthly_contribution_history(
    contributions: Iterable[SavingsContribution],
    months: int = HISTORY_MONTHS,
) -> pd.Series:
    """Total contributed per calendar month, oldest first, last ``months`` months with data."""
    rows = [{'Date': c.date, 'Amount': c.amount} for c in contributions]
    if not rows:
        return pd.Series(dtype=float)
    df = pd.DataFrame(rows)
    df['Month'] = pd.to_datetime(df['Date']).dt.to_period('M')
    totals = df.groupby('Month')['Amount'].sum().sort_index()
    return totals.tail(months)


def average_monthly_contribution(
    contributions: Iterable[SavingsContribution],
    today: Optional[date] = None,
) -> float:
    """Contributed total spread over the months since the first contribution."""
    items = list(contributions)
    if not items:
        return 0.0
    total = sum(c.amount for c in items)
    first = min(c.date for c in items)
    months = months_between(first, today or date.today())
    return total / max(months, 1)


def recommendations(goal: SavingsGoal, today: Optional[date] = None) -> List[str]:
    status = goal.status(today)
    recs: List[str] = []
    if status == GoalStatus.BEHIND_SCHEDULE:
        gap = goal.required_monthly_contribution(today) - goal.monthly_contribution
        recs.append(f"Increase the monthly contribution by {gap:,.2f} to catch up")
        recs.append("Review the budget to find possible savings")
    elif status == GoalStatus.ON_TRACK:
        recs.append("On track, keep this pace")
        recs.append("Consider moving the savings to an interest-bearing account")
    elif status == GoalStatus.COMPLETED:
        recs.append("Goal reached")
        recs.append("Time to set a new savings goal")
    else:
        recs.append("Set a new, realistic target date")
        recs.append("Review what prevented reaching the original target")

    if goal.priority == GoalPriority.URGENT:
        recs.append("Priority goal: fund this one first")
    return recs


def sort_goals(goals: Iterable[SavingsGoal]) -> List[SavingsGoal]:
    """Most pressing priority first, then earliest target date."""
    return sorted(goals, key=lambda g: (g.priority.rank, g.target_date))


def filter_goals(
    goals: Iterable[SavingsGoal],
    priority: Optional[GoalPriority] = None,
    status: Optional[GoalStatus] = None,
    today: Optional[date] = None,
) -> List[SavingsGoal]:
    selected = list(goals)
    if priority is not None:
        selected = [g for g in selected if g.priority == GoalPriority(priority)]
    if status is not None:
        selected = [g for g in selected if g.status(today) == GoalStatus(status)]
    return sort_goals(selected)


def active_goal_totals(goals: Iterable[SavingsGoal], today: Optional[date] = None) -> Dict[str, float]:
    active = [g for g in goals if g.is_active]
    target = sum(g.target_amount for g in active)
    current = sum(g.current_amount for g in active)
    return {
        'active_count': len(active),
        'completed_count': sum(1 for g in active if g.status(today) == GoalStatus.COMPLETED),
        'target_total': target,
        'current_total': current,
        'overall_progress': min(current / target, 1.0) if target > 0 else 0.0,
    }


def monthly_savings_total(goals: Iterable[SavingsGoal]) -> float:
    """Sum of planned monthly contributions over active goals."""
    return float(sum(g.monthly_contribution for g in goals if g.is_active))
