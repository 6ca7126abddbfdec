# jobmatch/services/queue.py
"""Durable, poll-driven task queue backed by the queue_tasks table.

State machine per task::

    pending -> processing -> completed
                          -> pending   (failed attempt, below the ceiling)
                          -> failed    (attempts exhausted or non-retryable error)
    pending -> cancelled               (operator action)
    failed  -> pending                 (operator retry, fresh attempt budget)

A claim is a single conditional UPDATE from pending to processing, so two
concurrent drains never execute the same task. Claims carry a timestamp and
a sweep returns claims older than the timeout to pending.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from jobmatch.core.config import Settings, settings as default_settings
from jobmatch.core.errors import (
    AuthorizationError, MatchingError, NotFoundError, QueueExhaustedError, StoreError,
    ValidationError,
)
from jobmatch.db.models import QueueTask, utcnow
from jobmatch.db.store import ProfileStore

logger = logging.getLogger(__name__)

TASK_TYPES = ("resume_embedding", "featured_match", "notify", "cleanup_matches")
STATUSES = ("pending", "processing", "completed", "failed", "cancelled")

# errors that will fail the same way on every attempt
NON_RETRYABLE = (ValidationError, NotFoundError, AuthorizationError)

Handler = Callable[[dict], Any]


def default_dedup_key(task_type: str, payload: dict) -> str | None:
    if task_type == "resume_embedding" and payload.get("userId"):
        return f"resume_embedding:{payload['userId']}"
    if task_type in ("featured_match", "notify") and payload.get("jobId"):
        return f"{task_type}:{payload['jobId']}"
    if task_type == "cleanup_matches":
        return "cleanup_matches"
    return None


class JobQueue:
    def __init__(self, store: ProfileStore, settings: Settings | None = None,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.settings = settings or default_settings
        self.clock = clock
        self.handlers: dict[str, Handler] = {}

    def register(self, task_type: str, handler: Handler) -> None:
        if task_type not in TASK_TYPES:
            raise ValidationError(f"unknown task type: {task_type}")
        self.handlers[task_type] = handler

    # ---------- Enqueue ----------
    def enqueue(self, task_type: str, payload: dict | None = None,
                dedup_key: str | None = None, delay_seconds: int = 0) -> int:
        """Insert a pending task, or return the id of the live task sharing its dedup key."""
        if task_type not in TASK_TYPES:
            raise ValidationError(f"unknown task type: {task_type}")
        payload = dict(payload or {})
        key = dedup_key or default_dedup_key(task_type, payload)

        existing = self._live_task_id(key)
        if existing is not None:
            logger.debug("enqueue %s deduplicated onto task %s", task_type, existing)
            return existing

        now = self.clock()
        try:
            with self.store.session("queue.enqueue", allow_conflict=True) as s:
                task = QueueTask(
                    type=task_type,
                    payload=payload,
                    dedup_key=key,
                    status="pending",
                    attempts=0,
                    max_attempts=self.settings.QUEUE_MAX_ATTEMPTS,
                    scheduled_for=now + timedelta(seconds=delay_seconds),
                    created_at=now,
                )
                s.add(task)
                s.flush()
                task_id = task.id
        except IntegrityError:
            # lost the race against a concurrent enqueue with the same key
            existing = self._live_task_id(key)
            if existing is None:
                raise
            return existing

        logger.info("enqueued %s task %s", task_type, task_id)
        return task_id

    def _live_task_id(self, key: str | None) -> int | None:
        if key is None:
            return None
        with self.store.session("queue.live_task") as s:
            return s.execute(
                select(QueueTask.id).where(
                    QueueTask.dedup_key == key,
                    QueueTask.status.in_(["pending", "processing"]),
                )
            ).scalar()

    # ---------- Claim / complete ----------
    def _candidate_ids(self, limit: int, now: datetime) -> list[int]:
        with self.store.session("queue.candidates") as s:
            return list(s.execute(
                select(QueueTask.id)
                .where(QueueTask.status == "pending", QueueTask.scheduled_for <= now)
                .order_by(QueueTask.id)
                .limit(limit)
            ).scalars())

    def _claim(self, task_id: int, now: datetime) -> QueueTask | None:
        with self.store.session("queue.claim") as s:
            res = s.execute(
                update(QueueTask)
                .where(QueueTask.id == task_id, QueueTask.status == "pending")
                .values(status="processing", claimed_at=now)
            )
            if res.rowcount != 1:
                return None
            return s.get(QueueTask, task_id)

    def _owned(self, task: QueueTask):
        # the row is still ours only while our claim stamp is on it
        return (
            (QueueTask.id == task.id)
            & (QueueTask.status == "processing")
            & (QueueTask.claimed_at == task.claimed_at)
        )

    def _complete(self, task: QueueTask, result: Any) -> bool:
        with self.store.session("queue.complete") as s:
            res = s.execute(
                update(QueueTask)
                .where(self._owned(task))
                .values(
                    status="completed",
                    completed_at=self.clock(),
                    result=result if isinstance(result, dict) else {"value": result},
                )
            )
            return res.rowcount == 1

    def _retry_delay(self, attempts: int) -> int:
        delays = self.settings.QUEUE_RETRY_DELAYS_SECONDS or [0]
        return delays[min(attempts - 1, len(delays) - 1)]

    def _fail(self, task: QueueTask, error: Exception) -> str:
        attempts = task.attempts + 1
        message = f"{type(error).__name__}: {error}"
        now = self.clock()
        terminal = isinstance(error, NON_RETRYABLE) or attempts >= task.max_attempts
        if terminal:
            values = dict(status="failed", attempts=attempts, last_error=message, completed_at=now)
        else:
            values = dict(
                status="pending", attempts=attempts, last_error=message, claimed_at=None,
                scheduled_for=now + timedelta(seconds=self._retry_delay(attempts)),
            )
        with self.store.session("queue.fail") as s:
            s.execute(update(QueueTask).where(self._owned(task)).values(**values))

        if terminal:
            exhausted = QueueExhaustedError(str(task.id), attempts, message)
            logger.error("%s task %s failed permanently: %s", task.type, task.id, exhausted)
            return "failed"
        logger.warning(
            "%s task %s attempt %d/%d failed, retrying: %s",
            task.type, task.id, attempts, task.max_attempts, message,
        )
        return "retry"

    def _run(self, task: QueueTask) -> bool:
        handler = self.handlers.get(task.type)
        try:
            if handler is None:
                raise ValidationError(f"no handler registered for {task.type}")
            logger.info("processing %s task %s", task.type, task.id)
            result = handler(dict(task.payload or {}))
        except Exception as exc:
            self._fail(task, exc)
            return False
        try:
            done = self._complete(task, result)
        except StoreError as exc:
            # the result could not be stored; release the claim as a failed attempt
            self._fail(task, exc)
            return False
        if not done:
            logger.warning("task %s lost its claim before completion", task.id)
            return False
        logger.info("completed %s task %s", task.type, task.id)
        return True

    def _execute(self, task: QueueTask) -> bool:
        try:
            return self._run(task)
        except MatchingError:
            # bookkeeping failed; the stale sweep releases the claim later
            logger.error("could not record outcome of %s task %s", task.type, task.id, exc_info=True)
            return False

    # ---------- Public operations ----------
    def process_all_pending_jobs(self, batch_size: int | None = None) -> dict:
        """Claim up to batch_size due tasks, run them, and report counts.

        A failing task never aborts the batch.
        """
        if batch_size is None:
            batch_size = self.settings.QUEUE_DEFAULT_BATCH
        if batch_size < 1:
            raise ValidationError("batch size must be >= 1")

        self.reclaim_stale_tasks()
        now = self.clock()
        claimed = []
        for task_id in self._candidate_ids(batch_size, now):
            task = self._claim(task_id, now)
            if task is not None:
                claimed.append(task)

        successful = 0
        if claimed:
            workers = max(1, min(self.settings.QUEUE_MAX_WORKERS, len(claimed)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="queue") as pool:
                for ok in pool.map(self._execute, claimed):
                    successful += int(ok)

        stats = {"processed": len(claimed), "successful": successful, "failed": len(claimed) - successful}
        logger.info(
            "batch processing complete: %(processed)d processed, %(successful)d successful, %(failed)d failed",
            stats,
        )
        return stats

    def reclaim_stale_tasks(self, now: datetime | None = None) -> int:
        """Return claims older than the timeout to pending; each counts as a failed attempt."""
        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.settings.QUEUE_CLAIM_TIMEOUT_SECONDS)
        with self.store.session("queue.stale_scan") as s:
            stale = list(s.execute(
                select(QueueTask).where(QueueTask.status == "processing", QueueTask.claimed_at < cutoff)
            ).scalars())

        reclaimed = 0
        for task in stale:
            attempts = task.attempts + 1
            if attempts >= task.max_attempts:
                values = dict(status="failed", attempts=attempts, completed_at=now,
                              last_error="claim expired")
            else:
                values = dict(status="pending", attempts=attempts, claimed_at=None,
                              scheduled_for=now, last_error="claim expired")
            with self.store.session("queue.reclaim") as s:
                res = s.execute(update(QueueTask).where(self._owned(task)).values(**values))
                reclaimed += res.rowcount or 0
        if reclaimed:
            logger.warning("reclaimed %d stale queue claims", reclaimed)
        return reclaimed

    def get_queue_stats(self) -> dict:
        with self.store.session("queue.stats") as s:
            rows = s.execute(
                select(QueueTask.status, QueueTask.type, func.count())
                .group_by(QueueTask.status, QueueTask.type)
            ).all()
        summary: dict[str, Any] = {status: 0 for status in STATUSES}
        by_type: dict[str, dict[str, int]] = {}
        for status, task_type, n in rows:
            summary[status] = summary.get(status, 0) + int(n)
            by_type.setdefault(task_type, {})[status] = int(n)
        summary["byType"] = by_type
        return summary

    def get_task(self, task_id: int) -> QueueTask | None:
        with self.store.session("queue.get_task") as s:
            return s.get(QueueTask, task_id)

    def list_failed_tasks(self, limit: int = 50) -> list[QueueTask]:
        with self.store.session("queue.failed") as s:
            return list(s.execute(
                select(QueueTask).where(QueueTask.status == "failed")
                .order_by(QueueTask.completed_at.desc()).limit(limit)
            ).scalars())

    def cancel_pending_tasks(self, task_type: str | None = None) -> int:
        q = update(QueueTask).where(QueueTask.status == "pending")
        if task_type:
            q = q.where(QueueTask.type == task_type)
        with self.store.session("queue.cancel") as s:
            n = s.execute(q.values(status="cancelled", completed_at=self.clock())).rowcount or 0
        logger.info("cancelled %d pending tasks%s", n, f" of type {task_type}" if task_type else "")
        return n

    def retry_failed_task(self, task_id: int) -> None:
        task = self.get_task(task_id)
        if task is None:
            raise NotFoundError("task", str(task_id))
        if task.status != "failed":
            raise ValidationError(f"task {task_id} is {task.status}, not failed")
        try:
            with self.store.session("queue.retry", allow_conflict=True) as s:
                s.execute(
                    update(QueueTask)
                    .where(QueueTask.id == task_id, QueueTask.status == "failed")
                    .values(status="pending", attempts=0, claimed_at=None,
                            completed_at=None, scheduled_for=self.clock())
                )
        except IntegrityError as exc:
            raise ValidationError(f"a live task already exists for {task.dedup_key}") from exc
        logger.info("task %s re-opened for retry", task_id)
