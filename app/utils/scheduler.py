"""
Background scheduler for deferred and periodic work.

Handles:
- Fire-and-forget side effects queued by request handlers (Klaviyo list
  subscription), retried with exponential backoff
- Ledger audit (daily at 3 AM UTC): replays each user's action log and logs
  any cached balance that diverges from it
"""
import os
import threading
import time
import logging
from datetime import datetime, timedelta
from typing import Callable

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None
_flask_app = None  # Flask app reference for jobs that need an app context

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 30


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs in production or when ENABLE_SCHEDULER=true. While the
    scheduler is not running, queued tasks run on a daemon thread.
    """
    global _scheduler, _flask_app

    _flask_app = app

    if app.config.get('TESTING'):
        print('[Scheduler] Disabled in testing mode')
        return

    if not (os.getenv('FLASK_ENV') == 'production' or os.getenv('ENABLE_SCHEDULER') == 'true'):
        print('[Scheduler] Disabled (set FLASK_ENV=production or ENABLE_SCHEDULER=true)')
        return

    if os.getenv('SCHEDULER_RUNNING') == 'true':
        print('[Scheduler] Already running in another process')
        return

    try:
        from apscheduler.schedulers.background import BackgroundScheduler
        from apscheduler.triggers.cron import CronTrigger

        _scheduler = BackgroundScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'misfire_grace_time': 3600  # 1 hour grace period
            }
        )

        # Ledger audit - Daily at 3 AM UTC
        _scheduler.add_job(
            run_ledger_audit,
            trigger=CronTrigger(hour=3, minute=0),
            id='ledger_audit',
            name='Verify cached balances against action logs',
            max_instances=1,
            replace_existing=True
        )

        _scheduler.start()
        os.environ['SCHEDULER_RUNNING'] = 'true'

        print('[Scheduler] Started with 1 scheduled job:')
        print('  - Ledger audit: Daily at 3:00 UTC')

        import atexit
        atexit.register(shutdown_scheduler)

    except Exception as e:
        print(f'[Scheduler] Failed to initialize: {e}')


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info('[Scheduler] Shutdown complete')


def is_running() -> bool:
    return bool(_scheduler and _scheduler.running)


def _inline_tasks() -> bool:
    """Tests run queued tasks inline so their effects are visible on return."""
    return bool(_flask_app and _flask_app.config.get('TESTING'))


def enqueue_task(
    func: Callable,
    *args,
    name: str = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: int = DEFAULT_RETRY_DELAY_SECONDS,
    **kwargs
) -> None:
    """
    Hand a side effect to the background scheduler.

    The caller never waits on the task and never sees its failure. A task
    fails when it raises or returns False; failed attempts are retried
    with exponential backoff until max_attempts is reached.

    Without a running scheduler the attempts run on a daemon thread, or
    inline and back to back under TESTING.
    """
    task_name = name or getattr(func, '__name__', 'task')

    if is_running():
        _schedule_attempt(func, args, kwargs, task_name, 1, max_attempts, retry_delay, delay=0)
        return

    if _inline_tasks():
        _run_attempts(func, args, kwargs, task_name, max_attempts, retry_delay=0)
        return

    worker = threading.Thread(
        target=_run_attempts,
        args=(func, args, kwargs, task_name, max_attempts, retry_delay),
        name=f'task-{task_name}',
        daemon=True
    )
    worker.start()


def _run_attempts(func, args, kwargs, task_name, max_attempts, retry_delay):
    for attempt in range(1, max_attempts + 1):
        if _run_attempt(func, args, kwargs, task_name, attempt, max_attempts):
            return
        if attempt < max_attempts and retry_delay:
            time.sleep(retry_delay * (2 ** (attempt - 1)))


def _schedule_attempt(func, args, kwargs, task_name, attempt, max_attempts, retry_delay, delay):
    _scheduler.add_job(
        _run_scheduled_attempt,
        trigger='date',
        run_date=datetime.utcnow() + timedelta(seconds=delay),
        args=[func, args, kwargs, task_name, attempt, max_attempts, retry_delay],
        name=f'{task_name} (attempt {attempt})',
        misfire_grace_time=None
    )


def _run_scheduled_attempt(func, args, kwargs, task_name, attempt, max_attempts, retry_delay):
    if _run_attempt(func, args, kwargs, task_name, attempt, max_attempts):
        return
    if attempt < max_attempts:
        backoff = retry_delay * (2 ** (attempt - 1))
        _schedule_attempt(func, args, kwargs, task_name, attempt + 1, max_attempts, retry_delay, backoff)


def _run_attempt(func, args, kwargs, task_name, attempt, max_attempts) -> bool:
    try:
        result = func(*args, **kwargs)
    except Exception as e:
        logger.warning(f'[Scheduler] {task_name} attempt {attempt}/{max_attempts} failed: {e}')
        result = False

    if result is False:
        if attempt >= max_attempts:
            logger.error(f'[Scheduler] {task_name} gave up after {max_attempts} attempts')
        return False
    return True


def run_ledger_audit():
    """Log every user whose cached balance diverges from the action log."""
    if not _flask_app:
        logger.warning('[Scheduler] Ledger audit skipped: no app registered')
        return

    with _flask_app.app_context():
        from ..services.ledger_store import LedgerStore

        try:
            mismatches = LedgerStore().find_balance_mismatches()
            if mismatches:
                for row in mismatches:
                    logger.error(
                        f"[Scheduler] Ledger mismatch for {row['email']}: "
                        f"cached {row['cached_balance']}, replayed {row['replayed_balance']}"
                    )
            else:
                logger.info('[Scheduler] Ledger audit clean')
        except Exception as e:
            logger.error(f'[Scheduler] Ledger audit failed: {e}')
