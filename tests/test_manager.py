from dataclasses import replace
from datetime import date

import pytest

from couple_budget import events
from couple_budget import records as rec
from couple_budget.db import RecordStore, RecordStoreError
from couple_budget.frequency import Frequency
from couple_budget.manager import BudgetManager, SyncStatus
from couple_budget.models import Budgets, Payer, Salaires, TransactionCategory
from couple_budget.validation import ValidationError

TODAY = date(2025, 2, 20)


class FlakyStore(RecordStore):
    """Record store whose writes can be switched to fail."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.fail_writes = False

    def apply_batch(self, saves=(), deletes=()):
        if self.fail_writes:
            raise RecordStoreError("simulated outage")
        return super().apply_batch(saves=saves, deletes=deletes)

    def clear(self, record_types=None):
        if self.fail_writes:
            raise RecordStoreError("simulated outage")
        super().clear(record_types)


def _manager(tmp_path, start=True):
    manager = BudgetManager(FlakyStore(tmp_path / 'budget.db'), clock=lambda: TODAY)
    if start:
        assert manager.start()
    return manager


def _reloaded(tmp_path):
    return _manager(tmp_path)


def _rent(manager, **overrides):
    values = dict(
        description='Rent', amount=50, category=TransactionCategory.LOYER, payer=Payer.COMMUN,
        frequency=Frequency.MONTHLY, start_date=date(2025, 1, 15), auto_generate=True,
    )
    values.update(overrides)
    return manager.add_recurring_expense(**values)


def test_start_with_empty_store_uses_defaults(tmp_path):
    manager = _manager(tmp_path)
    assert manager.is_ready
    assert manager.transactions == []
    assert manager.budgets == Budgets()
    assert manager.salaires == Salaires()


def test_add_transaction_persists_and_confirms(tmp_path):
    manager = _manager(tmp_path)
    tx = manager.add_transaction(TODAY, ' Courses ', TransactionCategory.ALIMENTATION, '42,50', Payer.PILOU)

    assert tx.amount == 42.5
    assert tx.description == 'Courses'
    assert manager.sync_status[tx.id] == SyncStatus.CONFIRMED
    assert manager.transactions == [tx]
    assert _reloaded(tmp_path).transactions == [tx]


def test_invalid_input_is_rejected_before_any_change(tmp_path):
    manager = _manager(tmp_path)
    with pytest.raises(ValidationError):
        manager.add_transaction(TODAY, 'x', TransactionCategory.ALIMENTATION, 0, Payer.PILOU)
    with pytest.raises(ValidationError):
        manager.add_transaction(TODAY, '  ', TransactionCategory.ALIMENTATION, 10, Payer.PILOU)
    with pytest.raises(ValidationError):
        _rent(manager, end_date=date(2025, 1, 14))
    with pytest.raises(ValidationError):
        manager.add_savings_goal('Trip', -5, date(2026, 1, 1))
    assert manager.transactions == []
    assert manager.recurring_expenses == []
    assert manager.savings_goals == []


def test_failed_write_rolls_back(tmp_path):
    manager = _manager(tmp_path)
    kept = manager.add_transaction(TODAY, 'kept', TransactionCategory.SORTIES, 20, Payer.DOUDOU)
    errors = []
    manager.subscribe(events.ERROR_RAISED, lambda event: errors.append(event.payload['message']))

    manager.store.fail_writes = True
    assert manager.add_transaction(TODAY, 'lost', TransactionCategory.SORTIES, 30, Payer.DOUDOU) is None
    assert manager.transactions == [kept]

    assert not manager.delete_transaction(kept.id)
    assert manager.transactions == [kept]
    assert manager.sync_status[kept.id] == SyncStatus.FAILED

    assert not manager.save_budgets(Budgets(loyer=9999))
    assert manager.budgets == Budgets()
    assert manager.error_message.startswith('Could not save budgets')
    assert len(errors) == 3


def test_failed_update_restores_previous_value(tmp_path):
    manager = _manager(tmp_path)
    tx = manager.add_transaction(TODAY, 'Cinema', TransactionCategory.SORTIES, 20, Payer.DOUDOU)
    manager.store.fail_writes = True

    assert not manager.update_transaction(replace(tx, amount=25))
    assert manager.transactions == [tx]

    manager.store.fail_writes = False
    assert manager.update_transaction(replace(tx, amount=25))
    assert manager.transactions[0].amount == 25
    assert _reloaded(tmp_path).transactions[0].amount == 25


def test_mutations_are_noops_when_store_not_ready(tmp_path):
    manager = _manager(tmp_path, start=False)
    assert manager.add_transaction(TODAY, 'x', TransactionCategory.LOYER, 10, Payer.COMMUN) is None
    assert manager.transactions == []
    assert 'Store unavailable' in manager.error_message
    assert not manager.load_all()
    assert manager.process_due_expenses(TODAY) == 0


def test_settings_survive_reload(tmp_path):
    manager = _manager(tmp_path)
    assert manager.set_category_budget(TransactionCategory.LOYER, '1 450')
    assert manager.save_salaires(Salaires(pilou=6500, doudou=9800))

    reloaded = _reloaded(tmp_path)
    assert reloaded.budgets.loyer == 1450
    assert reloaded.budgets.alimentation == Budgets().alimentation
    assert reloaded.salaires == Salaires(pilou=6500, doudou=9800)


def test_process_recurring_expense(tmp_path):
    manager = _manager(tmp_path)
    rent = _rent(manager)
    due = rent.next_due_date
    assert due == date(2025, 2, 15)
    assert manager.due_expenses(TODAY) == [rent]

    emitted = manager.process_recurring_expense(rent.id, TODAY)

    assert [(t.amount, t.date) for t in emitted] == [(50, date(2025, 2, 15))]
    processed = manager.find_recurring_expense(rent.id)
    assert processed.next_due_date > due
    assert processed.last_processed_date == due
    assert manager.transactions[0].id == emitted[0].id
    assert manager.process_recurring_expense(rent.id, TODAY) == []

    reloaded = _reloaded(tmp_path)
    assert [t.id for t in reloaded.transactions] == [emitted[0].id]
    assert reloaded.find_recurring_expense(rent.id).next_due_date == date(2025, 3, 15)


def test_process_failure_restores_schedule(tmp_path):
    manager = _manager(tmp_path)
    rent = _rent(manager)
    manager.store.fail_writes = True

    assert manager.process_recurring_expense(rent.id, TODAY) == []
    assert manager.transactions == []
    assert manager.find_recurring_expense(rent.id) == rent


def test_sweep_only_processes_auto_generating(tmp_path):
    manager = _manager(tmp_path)
    _rent(manager)
    _rent(manager, description='Manual', auto_generate=False)
    _rent(manager, description='Paused', auto_generate=True)
    paused = manager.recurring_expenses[-1]
    assert manager.set_recurring_active(paused.id, False)

    assert manager.process_due_expenses(date(2025, 4, 20)) == 3
    assert {t.description for t in manager.transactions} == {'Rent (recurring)'}


def test_delete_recurring_keeps_generated_transactions(tmp_path):
    manager = _manager(tmp_path)
    rent = _rent(manager)
    manager.process_recurring_expense(rent.id, TODAY)

    assert manager.delete_recurring_expense(rent.id)
    assert manager.recurring_expenses == []
    assert len(manager.transactions) == 1
    assert len(_reloaded(tmp_path).transactions) == 1


def test_contribution_updates_goal_and_ledger_together(tmp_path):
    manager = _manager(tmp_path)
    goal = manager.add_savings_goal('Trip', 1200, date(2025, 12, 20), current_amount=200, monthly_contribution=100)

    contribution = manager.add_contribution(goal.id, 300, note='  bonus ')

    assert contribution.note == 'bonus'
    assert manager.find_savings_goal(goal.id).current_amount == 500
    assert manager.contributions_for_goal(goal.id) == [contribution]

    reloaded = _reloaded(tmp_path)
    assert reloaded.find_savings_goal(goal.id).current_amount == 500
    assert reloaded.contributions_for_goal(goal.id) == [contribution]


def test_failed_contribution_leaves_goal_unchanged(tmp_path):
    manager = _manager(tmp_path)
    goal = manager.add_savings_goal('Trip', 1200, date(2025, 12, 20))
    manager.store.fail_writes = True

    assert manager.add_contribution(goal.id, 300) is None
    assert manager.find_savings_goal(goal.id) == goal
    assert manager.contributions == []


def test_delete_goal_cascades_contributions(tmp_path):
    manager = _manager(tmp_path)
    trip = manager.add_savings_goal('Trip', 1200, date(2025, 12, 20))
    car = manager.add_savings_goal('Car', 8000, date(2027, 1, 1))
    manager.add_contribution(trip.id, 100)
    manager.add_contribution(trip.id, 50)
    kept = manager.add_contribution(car.id, 500)

    assert manager.delete_savings_goal(trip.id)

    assert manager.contributions == [kept]
    assert manager.contributions_for_goal(trip.id) == []
    reloaded = _reloaded(tmp_path)
    assert [g.id for g in reloaded.savings_goals] == [car.id]
    assert reloaded.contributions == [kept]


def test_load_skips_malformed_records(tmp_path):
    manager = _manager(tmp_path)
    tx = manager.add_transaction(TODAY, 'ok', TransactionCategory.LOYER, 10, Payer.COMMUN)
    manager.store.save(rec.TRANSACTION, {'id': 'broken', 'date': '2025-01-01'})
    manager.store.save(rec.TRANSACTION, dict(rec.encode_transaction(tx), id='numeric-date', date=20250101))

    reloaded = _reloaded(tmp_path)
    assert reloaded.error_message is None
    assert [t.id for t in reloaded.transactions] == [tx.id]
    assert reloaded.last_load_skipped[rec.TRANSACTION] == 2


def test_events_published_on_change(tmp_path):
    manager = _manager(tmp_path)
    seen = []
    manager.subscribe(events.TRANSACTIONS_CHANGED, lambda event: seen.append(event.payload))

    tx = manager.add_transaction(TODAY, 'x', TransactionCategory.LOYER, 10, Payer.COMMUN)

    assert seen == [{'action': 'save transaction', 'ids': [tx.id], 'confirmed': True}]


def test_clear_all_data(tmp_path):
    manager = _manager(tmp_path)
    manager.add_transaction(TODAY, 'x', TransactionCategory.LOYER, 10, Payer.COMMUN)
    manager.save_salaires(Salaires(pilou=1, doudou=2))

    manager.store.fail_writes = True
    assert not manager.clear_all_data()
    assert len(manager.transactions) == 1

    manager.store.fail_writes = False
    assert manager.clear_all_data()
    assert manager.transactions == []
    assert manager.salaires == Salaires()
    assert _reloaded(tmp_path).transactions == []


def test_aggregator_and_export(tmp_path):
    manager = _manager(tmp_path)
    manager.add_transaction(TODAY, 'Courses', TransactionCategory.ALIMENTATION, 100, Payer.PILOU)
    manager.set_category_budget(TransactionCategory.ALIMENTATION, 400)

    agg = manager.aggregator()
    assert agg.budget_progress(TransactionCategory.ALIMENTATION) == pytest.approx(0.25)

    path = manager.export_to_file(tmp_path / 'out' / 'export.json')
    assert path.exists()
    payload = manager.export_payload()
    assert payload['budgets']['alimentation'] == 400
    assert len(payload['transactions']) == 1


def test_update_goal_and_recurring(tmp_path):
    manager = _manager(tmp_path)
    goal = manager.add_savings_goal('Trip', 1200, date(2025, 12, 20))
    rent = _rent(manager)

    assert manager.update_savings_goal(replace(goal, target_amount=1500))
    assert manager.update_recurring_expense(replace(rent, amount=60))
    assert not manager.update_savings_goal(replace(goal, id='unknown'))
    with pytest.raises(ValidationError):
        manager.update_recurring_expense(replace(rent, amount=-1))

    reloaded = _reloaded(tmp_path)
    assert reloaded.find_savings_goal(goal.id).target_amount == 1500
    assert reloaded.find_recurring_expense(rent.id).amount == 60


def test_save_existing_transaction_replaces_local_copy(tmp_path):
    manager = _manager(tmp_path)
    tx = manager.add_transaction(TODAY, 'Cinema', TransactionCategory.SORTIES, 10, Payer.DOUDOU)

    assert manager.save_transaction(replace(tx, amount=99.0))
    assert [t.amount for t in manager.transactions] == [99.0]
    assert [t.amount for t in _reloaded(tmp_path).transactions] == [99.0]

    manager.store.fail_writes = True
    assert not manager.save_transaction(replace(tx, amount=5.0))
    assert [t.amount for t in manager.transactions] == [99.0]
