import sqlite3

import pytest

from couple_budget.db import RecordStore, RecordStoreError, StoreUnavailableError


def _store(tmp_path):
    store = RecordStore(tmp_path / 'budget.db')
    store.init_db()
    return store


def test_store_not_ready_until_initialised(tmp_path):
    store = RecordStore(tmp_path / 'budget.db')
    assert not store.is_ready
    with pytest.raises(StoreUnavailableError):
        store.save('Transaction', {'id': 'a'})
    store.init_db()
    assert store.is_ready
    store.close()
    with pytest.raises(StoreUnavailableError):
        store.query('Transaction')


def test_save_upserts_and_query_sorts(tmp_path):
    store = _store(tmp_path)
    store.save('Transaction', {'id': 'a', 'date': '2025-01-02', 'amount': 1})
    store.save('Transaction', {'id': 'b', 'date': '2025-03-01', 'amount': 2})
    store.save('Transaction', {'id': 'c', 'amount': 3})
    store.save('Transaction', {'id': 'a', 'date': '2025-02-01', 'amount': 10})

    newest_first = store.query('Transaction', sort=('date', False))
    assert [r['id'] for r in newest_first] == ['b', 'a', 'c']
    assert newest_first[1]['amount'] == 10

    oldest_first = store.query('Transaction', sort=('date', True))
    assert [r['id'] for r in oldest_first] == ['a', 'b', 'c']


def test_query_where_equality(tmp_path):
    store = _store(tmp_path)
    store.save('SavingsContribution', {'id': '1', 'goalId': 'g1'})
    store.save('SavingsContribution', {'id': '2', 'goalId': 'g2'})
    store.save('SavingsContribution', {'id': '3', 'goalId': 'g1'})

    matches = store.query('SavingsContribution', where=('goalId', 'g1'), sort=('id', True))
    assert [r['id'] for r in matches] == ['1', '3']
    assert [r['id'] for r in store.query('SavingsContribution', where=('id', '2'))] == ['2']


def test_record_types_are_isolated(tmp_path):
    store = _store(tmp_path)
    store.save('Transaction', {'id': 'x'})
    store.save('SavingsGoal', {'id': 'x'})
    assert store.delete('Transaction', ['x']) == 1
    assert store.query('Transaction') == []
    assert len(store.query('SavingsGoal')) == 1


def test_apply_batch_rejects_whole_batch(tmp_path):
    store = _store(tmp_path)
    store.save('SavingsGoal', {'id': 'g'})
    with pytest.raises(RecordStoreError):
        store.apply_batch(
            saves=[('SavingsContribution', {'id': 'c1'}), ('SavingsContribution', {'amount': 1})],
            deletes=[('SavingsGoal', ['g'])],
        )
    assert store.query('SavingsContribution') == []
    assert len(store.query('SavingsGoal')) == 1

    deleted = store.apply_batch(
        saves=[('SavingsContribution', {'id': 'c1'})],
        deletes=[('SavingsGoal', ['g', 'missing'])],
    )
    assert deleted == 1
    assert len(store.query('SavingsContribution')) == 1


def test_singleton_keeps_latest(tmp_path):
    store = _store(tmp_path)
    assert store.load_singleton('Budgets') is None
    store.save_singleton('Budgets', {'loyer': 1000, 'lastUpdated': '2025-01-01T00:00:00'})
    store.save_singleton('Budgets', {'loyer': 1100, 'lastUpdated': '2025-02-01T00:00:00'})
    assert store.load_singleton('Budgets')['loyer'] == 1100
    assert len(store.query('Budgets')) == 1


def test_unreadable_rows_are_skipped(tmp_path):
    store = _store(tmp_path)
    store.save('Transaction', {'id': 'good'})
    with sqlite3.connect(str(store.db_path)) as conn:
        conn.execute(
            "INSERT INTO records (record_type, record_id, fields, updated_at) VALUES (?, ?, ?, ?)",
            ('Transaction', 'bad', '{not json', '2025-01-01'),
        )
    assert [r['id'] for r in store.query('Transaction')] == ['good']


def test_clear(tmp_path):
    store = _store(tmp_path)
    store.save('Transaction', {'id': 'a'})
    store.save('SavingsGoal', {'id': 'b'})
    store.clear(['Transaction'])
    assert store.query('Transaction') == []
    assert len(store.query('SavingsGoal')) == 1
    store.clear()
    assert store.query('SavingsGoal') == []


def test_sort_puts_mistyped_values_last(tmp_path):
    store = _store(tmp_path)
    store.save('Transaction', {'id': 'a', 'date': '2025-01-02'})
    store.save('Transaction', {'id': 'n', 'date': 20250101})
    store.save('Transaction', {'id': 'b', 'date': '2025-03-01'})

    assert [r['id'] for r in store.query('Transaction', sort=('date', False))] == ['b', 'a', 'n']
