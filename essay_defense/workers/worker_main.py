# essay_defense/workers/worker_main.py

import logging

from rq import Queue, SimpleWorker

from essay_defense.core.logging_config import setup_logging
from essay_defense.workers.queue import (
    GRADING_QUEUE_NAME,
    RECOVERY_QUEUE_NAME,
    ensure_recovery_sweep,
    get_redis_connection,
)

logger = logging.getLogger(__name__)

QUEUE_NAMES = [GRADING_QUEUE_NAME, RECOVERY_QUEUE_NAME]


def main():
    setup_logging()
    redis_conn = get_redis_connection()

    queues = [Queue(name, connection=redis_conn) for name in QUEUE_NAMES]

    # the sweep re-schedules itself; a restart must not start a second chain
    if ensure_recovery_sweep() is None:
        logger.info("Recovery sweep already scheduled, not starting another chain")

    worker = SimpleWorker(queues, connection=redis_conn)

    # scheduler is needed for enqueue_in
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
