"""Application state service for the couple budget tracker.

``BudgetManager`` owns every in-memory collection for the running session
and mirrors it to a ``RecordStore``. Mutations follow one discipline for all
entity types:

1. validate input (``ValidationError`` propagates to the caller),
2. check that the store is ready (otherwise no-op with an error message),
3. apply the change locally and mark the ids ``pending``,
4. write the change to the store as one batch,
5. mark ``confirmed``, or roll the local change back and mark ``failed``.

Observers subscribe to the event names in ``couple_budget.events``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import events
from . import records as rec
from .analytics import BudgetAggregator
from .config import SWEEP_INTERVAL_SECONDS
from .db import Delete, RecordStore, RecordStoreError, Save
from .events import EventBus, Handler
from .export import build_export, write_export
from .frequency import Frequency
from .goals import apply_contribution, contributions_for_goal, remove_goal
from .models import (
    Budgets,
    GoalCategory,
    GoalPriority,
    Payer,
    RecurringExpense,
    Salaires,
    SavingsContribution,
    SavingsGoal,
    Transaction,
    TransactionCategory,
)
from .recurring import auto_generation_candidates, due_expenses, materialize_due
from .scheduler import PeriodicSweeper
from .validation import (
    check_date_range,
    non_negative_amount,
    positive_amount,
    require_text,
)

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'


class BudgetManager:
    """Single owner of the budget state for one process."""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        clock: Callable[[], date] = date.today,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ):
        self.store = store or RecordStore()
        self.clock = clock
        self.sweep_interval = sweep_interval
        self.bus = EventBus()

        self.salaires = Salaires()
        self.budgets = Budgets()
        self.transactions: List[Transaction] = []
        self.recurring_expenses: List[RecurringExpense] = []
        self.savings_goals: List[SavingsGoal] = []
        self.contributions: List[SavingsContribution] = []

        self.sync_status: Dict[str, SyncStatus] = {}
        self.error_message: Optional[str] = None
        self.last_load_skipped: Dict[str, int] = {}

        self._lock = threading.RLock()
        self._sweeper: Optional[PeriodicSweeper] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, load: bool = True, sweep: bool = False) -> bool:
        """Open the store, load the saved state and optionally start the sweep."""
        try:
            self.store.init_db()
        except RecordStoreError as exc:
            self._report(f"Store unavailable: {exc}")
            return False
        loaded = self.load_all() if load else True
        if sweep:
            self.start_sweeper()
        return loaded

    def close(self) -> None:
        self.stop_sweeper()
        self.store.close()
        self.bus.clear()

    def __enter__(self) -> 'BudgetManager':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_ready(self) -> bool:
        return self.store.is_ready

    def today(self) -> date:
        return self.clock()

    def subscribe(self, name: str, handler: Handler) -> None:
        self.bus.subscribe(name, handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        self.bus.unsubscribe(name, handler)

    def start_sweeper(self, interval: Optional[float] = None) -> PeriodicSweeper:
        with self._lock:
            if self._sweeper is None or not self._sweeper.running:
                self._sweeper = PeriodicSweeper(
                    self.process_due_expenses,
                    interval if interval is not None else self.sweep_interval,
                    name='recurring-sweep',
                )
                self._sweeper.start()
            return self._sweeper

    def stop_sweeper(self) -> None:
        sweeper = self._sweeper
        self._sweeper = None
        if sweeper is not None:
            sweeper.stop()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _report(self, message: str) -> None:
        self.error_message = message
        logger.warning(message)
        self.bus.publish(events.ERROR_RAISED, message=message)

    def _ready_for(self, action: str) -> bool:
        if self.is_ready:
            return True
        self._report(f"Store unavailable, cannot {action}")
        return False

    def _commit(
        self,
        ids: Sequence[str],
        action: str,
        rollback: Callable[[], None],
        saves: Sequence[Save] = (),
        deletes: Sequence[Delete] = (),
        event: Optional[str] = None,
    ) -> bool:
        """Persist an already-applied local change, or undo it on failure."""
        for entity_id in ids:
            self.sync_status[entity_id] = SyncStatus.PENDING
        try:
            self.store.apply_batch(saves=saves, deletes=deletes)
        except RecordStoreError as exc:
            rollback()
            for entity_id in ids:
                self.sync_status[entity_id] = SyncStatus.FAILED
            self._report(f"Could not {action}: {exc}")
            if event:
                self.bus.publish(event, action=action, ids=list(ids), confirmed=False)
            return False
        for entity_id in ids:
            self.sync_status[entity_id] = SyncStatus.CONFIRMED
        self.error_message = None
        if event:
            self.bus.publish(event, action=action, ids=list(ids), confirmed=True)
        return True

    @staticmethod
    def _index_of(items: Sequence[Any], entity_id: str) -> int:
        for index, item in enumerate(items):
            if item.id == entity_id:
                return index
        return -1

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_all(self) -> bool:
        """Replace local state with the stored state.

        On a query failure the local state keeps its last known value.
        """
        with self._lock:
            if not self._ready_for("load data"):
                return False
            try:
                salaires_fields = self.store.load_singleton(rec.SALAIRES)
                budgets_fields = self.store.load_singleton(rec.BUDGETS)
                raw = {
                    record_type: self.store.query(record_type, sort=sort)
                    for record_type, sort in (
                        (rec.TRANSACTION, ('date', False)),
                        (rec.RECURRING_EXPENSE, ('nextDueDate', True)),
                        (rec.SAVINGS_GOAL, ('targetDate', True)),
                        (rec.SAVINGS_CONTRIBUTION, ('date', False)),
                    )
                }
            except RecordStoreError as exc:
                self._report(f"Could not load data: {exc}")
                return False

            decoded = {}
            self.last_load_skipped = {}
            for record_type, fields_list in raw.items():
                entities, skipped = rec.decode_records(record_type, fields_list)
                decoded[record_type] = entities
                self.last_load_skipped[record_type] = skipped

            self.salaires = rec.decode_salaires(salaires_fields) if salaires_fields else Salaires()
            self.budgets = rec.decode_budgets(budgets_fields) if budgets_fields else Budgets()
            self.transactions = decoded[rec.TRANSACTION]
            self.recurring_expenses = decoded[rec.RECURRING_EXPENSE]
            self.savings_goals = decoded[rec.SAVINGS_GOAL]
            self.contributions = decoded[rec.SAVINGS_CONTRIBUTION]
            self.sync_status = {
                entity.id: SyncStatus.CONFIRMED
                for entities in decoded.values() for entity in entities
            }
            self.error_message = None
            logger.info(
                "Loaded %d transactions, %d recurring expenses, %d goals, %d contributions",
                len(self.transactions), len(self.recurring_expenses),
                len(self.savings_goals), len(self.contributions),
            )
            self.bus.publish(events.DATA_LOADED, skipped=dict(self.last_load_skipped))
            return True

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def add_transaction(
        self,
        when: date,
        description: str,
        category: TransactionCategory,
        amount: Any,
        payer: Payer,
    ) -> Optional[Transaction]:
        transaction = Transaction(
            date=when,
            description=require_text(description),
            category=TransactionCategory(category),
            amount=positive_amount(amount),
            payer=Payer(payer),
        )
        return transaction if self.save_transaction(transaction) else None

    def save_transaction(self, transaction: Transaction) -> bool:
        positive_amount(transaction.amount)
        with self._lock:
            if not self._ready_for("save transaction"):
                return False
            index = self._index_of(self.transactions, transaction.id)
            previous = self.transactions[index] if index >= 0 else None
            if previous is None:
                self.transactions.insert(0, transaction)
            else:
                self.transactions[index] = transaction

            def rollback() -> None:
                position = self._index_of(self.transactions, transaction.id)
                if previous is None:
                    if position >= 0:
                        self.transactions.pop(position)
                elif position >= 0:
                    self.transactions[position] = previous

            return self._commit(
                [transaction.id], "save transaction", rollback,
                saves=[(rec.TRANSACTION, rec.encode_transaction(transaction))],
                event=events.TRANSACTIONS_CHANGED,
            )

    def update_transaction(self, transaction: Transaction) -> bool:
        """Replace an existing transaction locally and in the store."""
        positive_amount(transaction.amount)
        require_text(transaction.description)
        with self._lock:
            if not self._ready_for("update transaction"):
                return False
            index = self._index_of(self.transactions, transaction.id)
            if index < 0:
                self._report(f"Unknown transaction {transaction.id}")
                return False
            previous = self.transactions[index]
            self.transactions[index] = transaction

            def rollback() -> None:
                position = self._index_of(self.transactions, transaction.id)
                if position >= 0:
                    self.transactions[position] = previous

            return self._commit(
                [transaction.id], "update transaction", rollback,
                saves=[(rec.TRANSACTION, rec.encode_transaction(transaction))],
                event=events.TRANSACTIONS_CHANGED,
            )

    def delete_transaction(self, transaction_id: str) -> bool:
        with self._lock:
            if not self._ready_for("delete transaction"):
                return False
            index = self._index_of(self.transactions, transaction_id)
            if index < 0:
                return False
            removed = self.transactions.pop(index)

            def rollback() -> None:
                self.transactions.insert(min(index, len(self.transactions)), removed)

            return self._commit(
                [transaction_id], "delete transaction", rollback,
                deletes=[(rec.TRANSACTION, [transaction_id])],
                event=events.TRANSACTIONS_CHANGED,
            )

    # ------------------------------------------------------------------
    # Budgets and salaries
    # ------------------------------------------------------------------

    def save_budgets(self, budgets: Budgets) -> bool:
        for category in TransactionCategory:
            non_negative_amount(budgets.for_category(category), f"Budget for {category.value}")
        with self._lock:
            if not self._ready_for("save budgets"):
                return False
            previous = self.budgets
            self.budgets = budgets

            def rollback() -> None:
                self.budgets = previous

            fields = dict(rec.encode_budgets(budgets), id=rec.SINGLETON_ID)
            return self._commit(
                [rec.BUDGETS], "save budgets", rollback,
                saves=[(rec.BUDGETS, fields)],
                event=events.SETTINGS_CHANGED,
            )

    def set_category_budget(self, category: TransactionCategory, amount: Any) -> bool:
        value = non_negative_amount(amount, "Budget")
        updated = Budgets(**self.budgets.as_dict())
        updated.set_for_category(category, value)
        return self.save_budgets(updated)

    def save_salaires(self, salaires: Salaires) -> bool:
        non_negative_amount(salaires.pilou, "Salary")
        non_negative_amount(salaires.doudou, "Salary")
        with self._lock:
            if not self._ready_for("save salaries"):
                return False
            previous = self.salaires
            self.salaires = salaires

            def rollback() -> None:
                self.salaires = previous

            fields = dict(rec.encode_salaires(salaires), id=rec.SINGLETON_ID)
            return self._commit(
                [rec.SALAIRES], "save salaries", rollback,
                saves=[(rec.SALAIRES, fields)],
                event=events.SETTINGS_CHANGED,
            )

    # ------------------------------------------------------------------
    # Recurring expenses
    # ------------------------------------------------------------------

    def add_recurring_expense(
        self,
        description: str,
        amount: Any,
        category: TransactionCategory,
        payer: Payer,
        frequency: Frequency,
        start_date: date,
        end_date: Optional[date] = None,
        auto_generate: bool = False,
    ) -> Optional[RecurringExpense]:
        check_date_range(start_date, end_date)
        expense = RecurringExpense(
            description=require_text(description),
            amount=positive_amount(amount),
            category=TransactionCategory(category),
            payer=Payer(payer),
            frequency=Frequency(frequency),
            start_date=start_date,
            end_date=end_date,
            auto_generate=auto_generate,
        )
        return expense if self.save_recurring_expense(expense) else None

    def save_recurring_expense(self, expense: RecurringExpense) -> bool:
        """Insert or replace a recurring expense."""
        positive_amount(expense.amount)
        check_date_range(expense.start_date, expense.end_date)
        with self._lock:
            if not self._ready_for("save recurring expense"):
                return False
            index = self._index_of(self.recurring_expenses, expense.id)
            previous = self.recurring_expenses[index] if index >= 0 else None
            if previous is None:
                self.recurring_expenses.append(expense)
            else:
                self.recurring_expenses[index] = expense

            def rollback() -> None:
                position = self._index_of(self.recurring_expenses, expense.id)
                if previous is None:
                    if position >= 0:
                        self.recurring_expenses.pop(position)
                elif position >= 0:
                    self.recurring_expenses[position] = previous

            return self._commit(
                [expense.id], "save recurring expense", rollback,
                saves=[(rec.RECURRING_EXPENSE, rec.encode_recurring_expense(expense))],
                event=events.RECURRING_CHANGED,
            )

    def update_recurring_expense(self, expense: RecurringExpense) -> bool:
        if self.find_recurring_expense(expense.id) is None:
            self._report(f"Unknown recurring expense {expense.id}")
            return False
        require_text(expense.description)
        return self.save_recurring_expense(expense)

    def set_recurring_active(self, expense_id: str, active: bool) -> bool:
        expense = self.find_recurring_expense(expense_id)
        if expense is None:
            self._report(f"Unknown recurring expense {expense_id}")
            return False
        return self.save_recurring_expense(replace(expense, is_active=active))

    def delete_recurring_expense(self, expense_id: str) -> bool:
        """Remove the schedule. Transactions it already produced are kept."""
        with self._lock:
            if not self._ready_for("delete recurring expense"):
                return False
            index = self._index_of(self.recurring_expenses, expense_id)
            if index < 0:
                return False
            removed = self.recurring_expenses.pop(index)

            def rollback() -> None:
                self.recurring_expenses.insert(min(index, len(self.recurring_expenses)), removed)

            return self._commit(
                [expense_id], "delete recurring expense", rollback,
                deletes=[(rec.RECURRING_EXPENSE, [expense_id])],
                event=events.RECURRING_CHANGED,
            )

    def find_recurring_expense(self, expense_id: str) -> Optional[RecurringExpense]:
        index = self._index_of(self.recurring_expenses, expense_id)
        return self.recurring_expenses[index] if index >= 0 else None

    def due_expenses(self, now: Optional[date] = None) -> List[RecurringExpense]:
        return due_expenses(self.recurring_expenses, now or self.today())

    def process_recurring_expense(self, expense_id: str, now: Optional[date] = None) -> List[Transaction]:
        """Emit every missed occurrence and reschedule, committed as one batch.

        Returns the emitted transactions, or an empty list when nothing was
        due or the write failed.
        """
        now = now or self.today()
        with self._lock:
            if not self._ready_for("process recurring expense"):
                return []
            index = self._index_of(self.recurring_expenses, expense_id)
            if index < 0:
                self._report(f"Unknown recurring expense {expense_id}")
                return []
            original = self.recurring_expenses[index]
            emitted, advanced = materialize_due(original, now)
            if not emitted:
                return []

            self.recurring_expenses[index] = advanced
            for transaction in emitted:
                self.transactions.insert(0, transaction)
            emitted_ids = {t.id for t in emitted}

            def rollback() -> None:
                position = self._index_of(self.recurring_expenses, expense_id)
                if position >= 0:
                    self.recurring_expenses[position] = original
                self.transactions[:] = [t for t in self.transactions if t.id not in emitted_ids]

            saves: List[Save] = [(rec.TRANSACTION, rec.encode_transaction(t)) for t in emitted]
            saves.append((rec.RECURRING_EXPENSE, rec.encode_recurring_expense(advanced)))
            ok = self._commit(
                [expense_id, *emitted_ids], "process recurring expense", rollback,
                saves=saves,
            )
            if not ok:
                return []
            logger.info("Processed %r: %d transaction(s), next due %s",
                        advanced.description, len(emitted), advanced.next_due_date)
            self.bus.publish(events.TRANSACTIONS_CHANGED, action="process recurring expense",
                             ids=sorted(emitted_ids), confirmed=True)
            self.bus.publish(events.RECURRING_CHANGED, action="process recurring expense",
                             ids=[expense_id], confirmed=True)
            return emitted

    def process_due_expenses(self, now: Optional[date] = None) -> int:
        """Process every due auto-generating expense. Returns transactions emitted."""
        now = now or self.today()
        with self._lock:
            if not self.is_ready:
                logger.debug("Sweep skipped, store not ready")
                return 0
            candidates = auto_generation_candidates(self.recurring_expenses, now)
            emitted = 0
            for expense in candidates:
                emitted += len(self.process_recurring_expense(expense.id, now))
        if candidates:
            logger.info("Sweep processed %d expense(s), %d transaction(s)", len(candidates), emitted)
        return emitted

    # ------------------------------------------------------------------
    # Savings goals
    # ------------------------------------------------------------------

    def add_savings_goal(
        self,
        name: str,
        target_amount: Any,
        target_date: date,
        description: str = '',
        current_amount: Any = 0,
        start_date: Optional[date] = None,
        category: GoalCategory = GoalCategory.GENERAL,
        priority: GoalPriority = GoalPriority.MEDIUM,
        monthly_contribution: Any = 0,
    ) -> Optional[SavingsGoal]:
        goal = SavingsGoal(
            name=require_text(name, "Name"),
            description=(description or '').strip(),
            target_amount=positive_amount(target_amount, "Target amount"),
            current_amount=non_negative_amount(current_amount, "Current amount"),
            start_date=start_date or self.today(),
            target_date=target_date,
            category=GoalCategory(category),
            priority=GoalPriority(priority),
            monthly_contribution=non_negative_amount(monthly_contribution, "Monthly contribution"),
        )
        return goal if self.save_savings_goal(goal) else None

    def save_savings_goal(self, goal: SavingsGoal) -> bool:
        """Insert or replace a savings goal."""
        positive_amount(goal.target_amount, "Target amount")
        non_negative_amount(goal.monthly_contribution, "Monthly contribution")
        with self._lock:
            if not self._ready_for("save savings goal"):
                return False
            index = self._index_of(self.savings_goals, goal.id)
            previous = self.savings_goals[index] if index >= 0 else None
            if previous is None:
                self.savings_goals.append(goal)
            else:
                self.savings_goals[index] = goal

            def rollback() -> None:
                position = self._index_of(self.savings_goals, goal.id)
                if previous is None:
                    if position >= 0:
                        self.savings_goals.pop(position)
                elif position >= 0:
                    self.savings_goals[position] = previous

            return self._commit(
                [goal.id], "save savings goal", rollback,
                saves=[(rec.SAVINGS_GOAL, rec.encode_savings_goal(goal))],
                event=events.GOALS_CHANGED,
            )

    def update_savings_goal(self, goal: SavingsGoal) -> bool:
        if self.find_savings_goal(goal.id) is None:
            self._report(f"Unknown savings goal {goal.id}")
            return False
        require_text(goal.name, "Name")
        return self.save_savings_goal(goal)

    def find_savings_goal(self, goal_id: str) -> Optional[SavingsGoal]:
        index = self._index_of(self.savings_goals, goal_id)
        return self.savings_goals[index] if index >= 0 else None

    def delete_savings_goal(self, goal_id: str) -> bool:
        """Delete a goal together with all of its contributions."""
        with self._lock:
            if not self._ready_for("delete savings goal"):
                return False
            if self._index_of(self.savings_goals, goal_id) < 0:
                return False
            previous_goals = list(self.savings_goals)
            previous_contributions = list(self.contributions)
            goals, kept, removed = remove_goal(self.savings_goals, self.contributions, goal_id)
            self.savings_goals = goals
            self.contributions = kept

            def rollback() -> None:
                self.savings_goals = previous_goals
                self.contributions = previous_contributions

            deletes: List[Delete] = [(rec.SAVINGS_GOAL, [goal_id])]
            if removed:
                deletes.append((rec.SAVINGS_CONTRIBUTION, [c.id for c in removed]))
            return self._commit(
                [goal_id, *(c.id for c in removed)], "delete savings goal", rollback,
                deletes=deletes,
                event=events.GOALS_CHANGED,
            )

    def add_contribution(
        self,
        goal_id: str,
        amount: Any,
        note: Optional[str] = None,
        when: Optional[date] = None,
    ) -> Optional[SavingsContribution]:
        """Append a ledger entry and bump the goal's current amount together."""
        value = positive_amount(amount)
        with self._lock:
            if not self._ready_for("add contribution"):
                return None
            index = self._index_of(self.savings_goals, goal_id)
            if index < 0:
                self._report(f"Unknown savings goal {goal_id}")
                return None
            original = self.savings_goals[index]
            cleaned_note = (note or '').strip() or None
            contribution, updated = apply_contribution(original, value, cleaned_note, when or self.today())
            self.savings_goals[index] = updated
            self.contributions.insert(0, contribution)

            def rollback() -> None:
                position = self._index_of(self.savings_goals, goal_id)
                if position >= 0:
                    self.savings_goals[position] = original
                self.contributions[:] = [c for c in self.contributions if c.id != contribution.id]

            ok = self._commit(
                [goal_id, contribution.id], "add contribution", rollback,
                saves=[
                    (rec.SAVINGS_CONTRIBUTION, rec.encode_contribution(contribution)),
                    (rec.SAVINGS_GOAL, rec.encode_savings_goal(updated)),
                ],
                event=events.GOALS_CHANGED,
            )
            return contribution if ok else None

    def contributions_for_goal(self, goal_id: str) -> List[SavingsContribution]:
        return contributions_for_goal(self.contributions, goal_id)

    # ------------------------------------------------------------------
    # Whole-state operations
    # ------------------------------------------------------------------

    def clear_all_data(self) -> bool:
        """Reset to defaults locally and remove every stored record."""
        with self._lock:
            if not self._ready_for("clear data"):
                return False
            snapshot = (
                self.salaires, self.budgets, list(self.transactions),
                list(self.recurring_expenses), list(self.savings_goals), list(self.contributions),
            )
            self.salaires = Salaires()
            self.budgets = Budgets()
            self.transactions = []
            self.recurring_expenses = []
            self.savings_goals = []
            self.contributions = []
            try:
                self.store.clear()
            except RecordStoreError as exc:
                (self.salaires, self.budgets, self.transactions,
                 self.recurring_expenses, self.savings_goals, self.contributions) = snapshot
                self._report(f"Could not clear data: {exc}")
                return False
            self.sync_status.clear()
            self.bus.publish(events.DATA_LOADED, skipped={})
            return True

    def aggregator(self, today: Optional[date] = None) -> BudgetAggregator:
        with self._lock:
            return BudgetAggregator(
                list(self.transactions),
                list(self.recurring_expenses),
                list(self.savings_goals),
                budgets=Budgets(**self.budgets.as_dict()),
                salaires=Salaires(**self.salaires.as_dict()),
                today=today or self.today(),
            )

    def export_payload(self) -> Dict[str, Any]:
        with self._lock:
            return build_export(
                self.salaires, self.budgets, self.transactions,
                self.recurring_expenses, self.savings_goals, self.contributions,
            )

    def export_to_file(self, path: Optional[Path] = None) -> Path:
        return write_export(self.export_payload(), path)

    def failed_ids(self) -> List[str]:
        return [entity_id for entity_id, status in self.sync_status.items() if status == SyncStatus.FAILED]
