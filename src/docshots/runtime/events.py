"""Run queue for asynchronous API requests.

In-memory by default; Redis when ``EVENT_BACKEND=redis`` so that the API and
worker can live in separate processes.
"""

from __future__ import annotations

import json
import queue
import threading
from typing import Any

from ..config.settings import settings

RUN_QUEUE = "docshots_runs"
RESULT_TTL_SECONDS = 3600


class InMemoryBus:
    def __init__(self) -> None:
        self._q: queue.Queue[str] = queue.Queue()
        self._results: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def enqueue(self, payload: dict[str, Any]) -> None:
        self._q.put(json.dumps(payload))

    def dequeue(self, timeout: float | None = None) -> dict[str, Any] | None:
        try:
            msg = self._q.get(timeout=timeout)
        except queue.Empty:
            return None
        return json.loads(msg)

    def set_result(self, job_id: str, result: dict[str, Any]) -> None:
        with self._lock:
            self._results[job_id] = result

    def get_result(self, job_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._results.get(job_id)


class RedisBus:
    def __init__(self, url: str) -> None:
        import redis  # lazy import

        self._r = redis.Redis.from_url(url, decode_responses=True)

    def enqueue(self, payload: dict[str, Any]) -> None:
        self._r.rpush(RUN_QUEUE, json.dumps(payload))

    def dequeue(self, timeout: float | None = None) -> dict[str, Any] | None:
        to = int(timeout) if timeout else 0
        item = self._r.blpop([RUN_QUEUE], timeout=to)
        if not item:
            return None
        _, msg = item  # type: ignore[misc]
        if isinstance(msg, bytes):
            msg = msg.decode("utf-8")
        return json.loads(msg)

    def set_result(self, job_id: str, result: dict[str, Any]) -> None:
        self._r.set(f"run:{job_id}:result", json.dumps(result), ex=RESULT_TTL_SECONDS)

    def get_result(self, job_id: str) -> dict[str, Any] | None:
        val = self._r.get(f"run:{job_id}:result")
        return json.loads(val) if val else None  # type: ignore[arg-type]


_INMEMORY_SINGLETON: InMemoryBus | None = None
_SINGLETON_LOCK = threading.Lock()


def get_bus():
    if settings.event_backend == "redis":
        return RedisBus(settings.redis_url or "redis://localhost:6379/0")
    # One in-memory bus per process so API and worker threads share state
    global _INMEMORY_SINGLETON
    with _SINGLETON_LOCK:
        if _INMEMORY_SINGLETON is None:
            _INMEMORY_SINGLETON = InMemoryBus()
    return _INMEMORY_SINGLETON
