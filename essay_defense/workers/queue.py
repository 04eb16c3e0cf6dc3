# essay_defense/workers/queue.py

from datetime import timedelta
from typing import Any, Callable

from redis import Redis
from rq import Queue
from rq.registry import ScheduledJobRegistry

from essay_defense.core.config import settings

GRADING_QUEUE_NAME = "grading"
RECOVERY_QUEUE_NAME = "recovery"

_redis_conn: Redis | None = None


def get_redis_connection() -> Redis:
    global _redis_conn
    if _redis_conn is None:
        _redis_conn = Redis.from_url(settings.REDIS_URL)
    return _redis_conn


def get_queue(name: str) -> Queue:
    return Queue(name, connection=get_redis_connection())


def enqueue_job(
    func: Callable[..., Any],
    *args: Any,
    queue_name: str,
    **kwargs: Any,
) -> str:
    q = get_queue(queue_name)
    job = q.enqueue(func, *args, **kwargs)
    return job.id


def enqueue_grading_task(session_id: str) -> str:
    from essay_defense.workers.tasks import grading_task

    return enqueue_job(grading_task, session_id, queue_name=GRADING_QUEUE_NAME)


def enqueue_grade_all_task() -> str:
    from essay_defense.workers.tasks import grade_all_task

    return enqueue_job(grade_all_task, queue_name=GRADING_QUEUE_NAME)


def enqueue_recovery_sweep(delay: timedelta | None = None, reschedule: bool = True) -> str:
    from essay_defense.workers.tasks import recovery_sweep_task

    q = get_queue(RECOVERY_QUEUE_NAME)
    if delay is not None:
        job = q.enqueue_in(delay, recovery_sweep_task, reschedule=reschedule)
    else:
        job = q.enqueue(recovery_sweep_task, reschedule=reschedule)
    return job.id


def recovery_sweep_pending() -> bool:
    """True when a sweep is already queued or scheduled, e.g. left over from a previous worker."""
    q = get_queue(RECOVERY_QUEUE_NAME)
    return len(q) > 0 or len(ScheduledJobRegistry(queue=q)) > 0


def ensure_recovery_sweep() -> str | None:
    """Start the periodic sweep chain unless one already exists."""
    if recovery_sweep_pending():
        return None
    return enqueue_recovery_sweep()
