# jobmatch/services/notifications.py
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Protocol, Sequence

from jobmatch.core.config import Settings, settings as default_settings
from jobmatch.core.errors import NotFoundError
from jobmatch.db.models import Job
from jobmatch.db.store import ProfileStore
from jobmatch.services.matching import MAX_SCORE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchAlert:
    job_id: str
    profile_id: str
    user_id: str
    score: float
    reasons: tuple[str, ...]


class Notifier(Protocol):
    """Delivery collaborator. Returns the profile ids it actually delivered to."""

    def send_match_alerts(self, job: Job, alerts: Sequence[MatchAlert]) -> list[str]: ...


class LoggingNotifier:
    """Stand-in transport: records each alert in the log and acknowledges it."""

    def send_match_alerts(self, job: Job, alerts: Sequence[MatchAlert]) -> list[str]:
        for a in alerts:
            logger.info("match alert: job %s (%s) -> user %s score %.1f", job.id, job.title, a.user_id, a.score)
        return [a.profile_id for a in alerts]


class MatchAlertDispatcher:
    def __init__(self, store: ProfileStore, notifier: Notifier, settings: Settings | None = None):
        self.store = store
        self.notifier = notifier
        self.settings = settings or default_settings
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    @property
    def min_score(self) -> float:
        return self.settings.ALERT_MIN_NORMALIZED_SCORE / 100.0 * MAX_SCORE

    def _send(self, job: Job, alerts: list[MatchAlert]) -> list[str]:
        future = self._pool.submit(self.notifier.send_match_alerts, job, alerts)
        try:
            return list(future.result(timeout=self.settings.NOTIFY_TIMEOUT_SECONDS) or [])
        except FutureTimeout as exc:
            future.cancel()
            raise TimeoutError(
                f"notifier timed out after {self.settings.NOTIFY_TIMEOUT_SECONDS}s"
            ) from exc

    def dispatch(self, job_id: str) -> dict:
        """Send alerts for unsent matches at or above the alert threshold."""
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("job", job_id)

        pending = self.store.unsent_matches(job_id, self.min_score)
        if not pending:
            return {"jobId": job_id, "eligible": 0, "sent": 0}

        alerts = []
        for m in pending:
            profile = self.store.get_profile(m.profile_id)
            if profile is None or not profile.opt_in_email_alerts:
                continue
            alerts.append(MatchAlert(job_id, m.profile_id, profile.user_id, m.score, tuple(m.reasons or [])))

        sent = 0
        size = max(1, self.settings.NOTIFY_BATCH_SIZE)
        for i in range(0, len(alerts), size):
            batch = alerts[i:i + size]
            delivered = set(self._send(job, batch))
            acked = [a.profile_id for a in batch if a.profile_id in delivered]
            sent += self.store.mark_emails_sent(job_id, acked)

        logger.info("match alerts for job %s: %d eligible, %d sent", job_id, len(alerts), sent)
        if sent < len(alerts):
            # partial delivery; let the queue retry the remainder
            raise RuntimeError(f"{len(alerts) - sent} of {len(alerts)} alerts were not delivered")
        return {"jobId": job_id, "eligible": len(alerts), "sent": sent}
