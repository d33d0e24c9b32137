# apps/workers/enqueuer.py
import logging
import os

import yaml
from rq import Queue

from apps.workers.jobs import RSS_MAX_ITEMS, _hash_link, _rq_redis, rss_poll

SOURCES_FILE = os.getenv("SOURCES_FILE", os.path.join(os.path.dirname(__file__), "sources.yaml"))

log = logging.getLogger("feedthumb.workers")


def load_sources(path: str = SOURCES_FILE) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def main(path: str = SOURCES_FILE) -> int:
    conn = _rq_redis()
    q = Queue("default", connection=conn)

    cfg = load_sources(path)
    max_items = int(cfg.get("max_items_per_feed", RSS_MAX_ITEMS))

    total = 0
    for rss in (cfg.get("rss") or []):
        url = rss if isinstance(rss, str) else rss.get("url")
        if not url:
            continue
        job = q.enqueue_call(
            func=rss_poll,
            args=(url,),
            kwargs={"max_items": max_items},
            job_id=f"poll-rss-{_hash_link(url)[:16]}",
            ttl=600, result_ttl=0, failure_ttl=900,
        )
        log.info("[enqueuer] enqueued %s", job.id)
        total += 1

    log.info("[enqueuer] enqueued total: %d", total)
    return total

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    main()
