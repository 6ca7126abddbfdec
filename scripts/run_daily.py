# scripts/run_daily.py
"""Daily matching run: refresh stale resume embeddings, rescore featured jobs, drain the queue."""
from jobmatch.core.config import settings
from jobmatch.core.logging import configure_logging
from jobmatch.db.session import make_engine, make_session_factory
from jobmatch.db.store import ProfileStore
from jobmatch.nlp.embeddings import SentenceTransformerExtractor
from jobmatch.services.container import build_services

EMBED_LIMIT = 200
FEATURED_LIMIT = 100


def main():
    configure_logging(settings.LOG_LEVEL)
    store = ProfileStore(make_session_factory(make_engine(settings.DATABASE_URL)))
    store.create_all()
    services = build_services(store, SentenceTransformerExtractor(settings.EMBEDDING_MODEL), settings=settings)
    queue = services.queue

    reclaimed = queue.reclaim_stale_tasks()
    print(f"Reclaimed {reclaimed} stale claims")

    users = services.resumes.get_users_needing_processing(EMBED_LIMIT)
    for user_id in users:
        queue.enqueue("resume_embedding", {"userId": user_id})
    print(f"Queued resume embedding for {len(users)} users")

    featured = store.list_active_jobs(limit=FEATURED_LIMIT, featured_only=True)
    for job in featured:
        queue.enqueue("featured_match", {"jobId": job.id})
    queue.enqueue("cleanup_matches", {})
    print(f"Queued matching for {len(featured)} featured jobs")

    # notify tasks are enqueued by the matching runs, so drain until quiet
    totals = {"processed": 0, "successful": 0, "failed": 0}
    while True:
        result = queue.process_all_pending_jobs(settings.QUEUE_DEFAULT_BATCH)
        for k in totals:
            totals[k] += result[k]
        if result["processed"] == 0:
            break
    print(f"Processed {totals['processed']} tasks ({totals['successful']} ok, {totals['failed']} failed)")
    print(f"Queue: {queue.get_queue_stats()}")
    services.close()


if __name__ == "__main__":
    main()
