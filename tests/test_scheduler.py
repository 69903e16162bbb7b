"""
Tests for queued side effects, best-effort calls and the ledger CLI.
"""
import threading
from unittest.mock import MagicMock, patch

import pytest

from app.extensions import db
from app.services.best_effort import attempt
from app.utils import scheduler


@pytest.mark.usefixtures('app')
class TestEnqueueTaskInline:

    def test_runs_once_on_success(self):
        task = MagicMock(return_value=True)

        scheduler.enqueue_task(task, 'ada@example.com', name='subscribe', first_name='Ada')

        task.assert_called_once_with('ada@example.com', first_name='Ada')

    def test_none_result_counts_as_done(self):
        task = MagicMock(return_value=None)
        scheduler.enqueue_task(task)
        assert task.call_count == 1

    def test_retries_false_result(self):
        task = MagicMock(side_effect=[False, True])
        scheduler.enqueue_task(task, name='flaky')
        assert task.call_count == 2

    def test_gives_up_after_max_attempts(self):
        task = MagicMock(side_effect=Exception('down'))

        scheduler.enqueue_task(task, name='broken', max_attempts=4)

        assert task.call_count == 4

    def test_hands_off_to_running_scheduler(self):
        task = MagicMock()
        fake_scheduler = MagicMock()
        fake_scheduler.running = True

        with patch.object(scheduler, '_scheduler', fake_scheduler):
            scheduler.enqueue_task(task, 'ada@example.com', name='subscribe')

        task.assert_not_called()
        job = fake_scheduler.add_job.call_args
        assert job.args[0] is scheduler._run_scheduled_attempt
        assert job.kwargs['name'] == 'subscribe (attempt 1)'

    def test_scheduled_failure_reschedules_with_backoff(self):
        task = MagicMock(return_value=False)
        fake_scheduler = MagicMock()

        with patch.object(scheduler, '_scheduler', fake_scheduler), \
             patch.object(scheduler, '_schedule_attempt') as schedule:
            scheduler._run_scheduled_attempt(task, (), {}, 'subscribe', 2, 3, 30)

        schedule.assert_called_once_with(task, (), {}, 'subscribe', 3, 3, 30, 60)

    def test_last_scheduled_failure_stops(self):
        task = MagicMock(return_value=False)

        with patch.object(scheduler, '_schedule_attempt') as schedule:
            scheduler._run_scheduled_attempt(task, (), {}, 'subscribe', 3, 3, 30)

        schedule.assert_not_called()


class TestEnqueueTaskBackground:
    """Without a scheduler or TESTING, tasks run on a worker thread."""

    def test_caller_does_not_wait(self):
        release = threading.Event()
        finished = threading.Event()

        def slow_task(email):
            release.wait(5)
            finished.set()
            return True

        with patch.object(scheduler, '_inline_tasks', return_value=False):
            scheduler.enqueue_task(slow_task, 'ada@example.com', name='subscribe')

        assert not finished.is_set()
        release.set()
        assert finished.wait(5)

    def test_background_retries_until_success(self):
        done = threading.Event()
        task = MagicMock(side_effect=[False, Exception('down'), True])

        def tracked():
            result = task()
            if result:
                done.set()
            return result

        with patch.object(scheduler, '_inline_tasks', return_value=False):
            scheduler.enqueue_task(tracked, name='flaky', retry_delay=0)

        assert done.wait(5)
        assert task.call_count == 3


class TestAttempt:

    def test_success(self):
        result = attempt(lambda x: x * 2, 21)

        assert result.ok is True
        assert result.value == 42
        assert result.error is None

    def test_failure_is_captured(self):
        error = RuntimeError('boom')
        result = attempt(MagicMock(side_effect=error), description='deactivate code')

        assert result.ok is False
        assert result.error is error


class TestLedgerAudit:

    def test_audit_logs_mismatch(self, app, make_user):
        user = make_user(email='drift@example.com', points=5)
        user.points = 50
        db.session.commit()

        with patch.object(scheduler, 'logger') as logger:
            scheduler.run_ledger_audit()

        message = logger.error.call_args.args[0]
        assert 'drift@example.com' in message
        assert 'cached 50, replayed 5' in message

    def test_audit_clean(self, app, make_user):
        make_user(points=5)

        with patch.object(scheduler, 'logger') as logger:
            scheduler.run_ledger_audit()

        logger.info.assert_called_once_with('[Scheduler] Ledger audit clean')
        logger.error.assert_not_called()


class TestLedgerCommands:

    def test_verify_clean(self, app, make_user):
        make_user(points=5)

        result = app.test_cli_runner().invoke(args=['ledger', 'verify'])

        assert result.exit_code == 0
        assert 'All balances match their action logs' in result.output

    def test_verify_reports_mismatch(self, app, make_user):
        user = make_user(email='drift@example.com', points=5)
        user.points = 12
        db.session.commit()

        result = app.test_cli_runner().invoke(args=['ledger', 'verify'])

        assert result.exit_code == 1
        assert 'drift@example.com: cached 12, replayed 5 (diff +7)' in result.output

    def test_verify_unknown_user(self, app):
        result = app.test_cli_runner().invoke(args=['ledger', 'verify', '--email', 'ghost@example.com'])
        assert result.exit_code == 1

    def test_show_user(self, app, make_user):
        make_user(email='ada@example.com', referral_code='ABC123', points=5)

        result = app.test_cli_runner().invoke(args=['ledger', 'user', 'ada@example.com'])

        assert result.exit_code == 0
        assert 'Points: 5 (replayed: 5)' in result.output
        assert 'Referral code: ABC123' in result.output
        assert 'signup' in result.output
