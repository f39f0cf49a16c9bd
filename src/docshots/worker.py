from __future__ import annotations

import logging
import threading

from pydantic import ValidationError

from .api.dto import RunRequest
from .config.settings import settings
from .core.errors import FlowDefinitionError
from .core.executor.runner import run_job, run_job_with_id
from .logging_setup import configure_logging
from .runtime.events import get_bus

logger = logging.getLogger(__name__)


def _worker_loop() -> None:
    bus = get_bus()
    while True:
        msg = bus.dequeue(timeout=5)
        if not msg:
            continue
        job_id = msg.get("job_id")
        try:
            req = RunRequest(**msg["request"])
        except (KeyError, TypeError, ValidationError) as e:
            logger.error("Dropping malformed job %s: %s", job_id, e)
            continue
        try:
            result = run_job_with_id(job_id, req) if job_id else run_job(req)
        except FlowDefinitionError as e:
            logger.error("Job %s has invalid flows: %s", job_id, e)
            if job_id:
                bus.set_result(job_id, {"job_id": job_id, "status": "failed", "error": str(e)})
            continue
        except Exception as e:
            # Keep the worker thread alive; the failure is reported through the job result
            logger.exception("Job %s crashed", job_id)
            if job_id:
                bus.set_result(job_id, {"job_id": job_id, "status": "failed", "error": str(e)})
            continue
        logger.info("Job %s finished: %s", result.job_id, result.status)
        bus.set_result(result.job_id, result.model_dump(mode="json"))


def main() -> None:
    configure_logging(settings.log_level)
    threads = []
    for _ in range(max(1, settings.worker_concurrency)):
        t = threading.Thread(target=_worker_loop, daemon=True)
        t.start()
        threads.append(t)
    logger.info("Started %d worker thread(s)", len(threads))
    # Keep the main thread alive
    for t in threads:
        t.join()


if __name__ == "__main__":
    main()
