#!/usr/bin/env python3
"""Command-line access to the budget store: summaries, sweeps and exports."""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from couple_budget.config import configure_logging, ensure_data_directories
from couple_budget.db import RecordStore
from couple_budget.manager import BudgetManager
from couple_budget.models import Payer, TransactionCategory
from couple_budget.validation import ValidationError


def _manager(db_path: Optional[str]) -> BudgetManager:
    ensure_data_directories()
    manager = BudgetManager(RecordStore(Path(db_path) if db_path else None))
    if not manager.start():
        raise SystemExit(f"Could not open budget store: {manager.error_message}")
    return manager


def show_summary(manager: BudgetManager) -> None:
    aggregator = manager.aggregator()
    summary = aggregator.monthly_summary()
    print(f"Month: {summary['month']}")
    print(f"Income: {summary['total_income']:,.2f}")
    print(f"Spent this month: {summary['current_month_spending']:,.2f}")
    print(f"Recurring (monthly): {summary['total_monthly_recurring']:,.2f}")
    print(f"Savings goals (monthly): {summary['total_monthly_savings_goals']:,.2f}")
    print(f"Remaining disposable: {summary['remaining_disposable']:,.2f}")
    print("\nBudget overview:")
    print(aggregator.budget_overview().to_string())
    if summary['over_budget']:
        print("\nOver budget: " + ", ".join(summary['over_budget']))


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Couple budget tracker.')
    parser.add_argument('--db', help='Path to the SQLite database')
    parser.add_argument('--log-level', default=None, help='Logging level (default from env)')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('summary', help="Show this month's figures")

    sub.add_parser('sweep', help='Process every due auto-generating recurring expense')

    export = sub.add_parser('export', help='Write the whole state as JSON')
    export.add_argument('--output', type=Path, default=None, help='Target file')

    add = sub.add_parser('add-transaction', help='Record a one-off transaction')
    add.add_argument('description')
    add.add_argument('amount')
    add.add_argument('--category', choices=[c.value for c in TransactionCategory], required=True)
    add.add_argument('--payer', choices=[p.value for p in Payer], default=Payer.COMMUN.value)
    add.add_argument('--date', type=date.fromisoformat, default=None, help='YYYY-MM-DD, default today')

    contribute = sub.add_parser('contribute', help='Add money to a savings goal')
    contribute.add_argument('goal_id')
    contribute.add_argument('amount')
    contribute.add_argument('--note', default=None)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    manager = _manager(args.db)
    try:
        if args.command == 'summary':
            show_summary(manager)
        elif args.command == 'sweep':
            emitted = manager.process_due_expenses()
            print(f"Created {emitted} transaction(s)")
        elif args.command == 'export':
            path = manager.export_to_file(args.output)
            print(f"Exported to {path}")
        elif args.command == 'add-transaction':
            tx = manager.add_transaction(
                args.date or manager.today(),
                args.description,
                TransactionCategory(args.category),
                args.amount,
                Payer(args.payer),
            )
            if tx is None:
                print(f"Failed: {manager.error_message}", file=sys.stderr)
                return 1
            print(f"Saved transaction {tx.id}")
        elif args.command == 'contribute':
            contribution = manager.add_contribution(args.goal_id, args.amount, args.note)
            if contribution is None:
                print(f"Failed: {manager.error_message}", file=sys.stderr)
                return 1
            goal = manager.find_savings_goal(args.goal_id)
            print(f"Saved contribution; {goal.name} is at {goal.progress_percentage:.0%}")
    except ValidationError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    finally:
        manager.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
