import threading

from couple_budget.events import EventBus
from couple_budget.scheduler import PeriodicSweeper


def test_sweeper_runs_immediately_and_stops():
    ran = threading.Event()
    sweeper = PeriodicSweeper(ran.set, interval=3600, name='test-sweep')

    sweeper.start()
    assert ran.wait(5)
    assert sweeper.running

    sweeper.stop()
    assert not sweeper.running
    assert sweeper.runs == 1


def test_sweeper_repeats_on_interval():
    calls = []
    done = threading.Event()

    def callback():
        calls.append(1)
        if len(calls) >= 3:
            done.set()

    sweeper = PeriodicSweeper(callback, interval=0.01)
    sweeper.start()
    assert done.wait(5)
    sweeper.stop()
    assert len(calls) >= 3


def test_failing_callback_is_logged_and_schedule_continues(caplog):
    calls = []

    def callback():
        calls.append(1)
        raise RuntimeError("boom")

    sweeper = PeriodicSweeper(callback, interval=3600)
    sweeper.run_once()
    sweeper.run_once()

    assert len(calls) == 2
    assert 'run failed' in caplog.text


def test_event_bus_delivers_to_all_handlers_despite_failure():
    bus = EventBus()
    received = []

    def broken(event):
        raise ValueError("observer bug")

    bus.subscribe('GOALS_CHANGED', broken)
    bus.subscribe('GOALS_CHANGED', lambda event: received.append(event))

    assert bus.publish('GOALS_CHANGED', ids=['g1']) == 2
    assert received[0].name == 'GOALS_CHANGED'
    assert received[0].payload == {'ids': ['g1']}

    bus.unsubscribe('GOALS_CHANGED', broken)
    assert bus.publish('GOALS_CHANGED') == 1
    assert bus.publish('NOTHING') == 0
