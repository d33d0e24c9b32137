# apps/workers/jobs.py
#
# PIPELINE ROLE (this file runs in the "workers" container / RQ queue: default)
#
#   enqueuer   → reads sources.yaml and enqueues rss_poll(url) per feed
#   workers    → THIS FILE
#                 - rss_poll(): parse the feed, build one item per entry,
#                   pick its thumbnail (extract_thumbnail_url), push new
#                   items to Redis FEED_KEY and trim it
#   api        → serves /v1/feed by reading FEED_KEY
#
# Extra utility:
# - backfill_thumbnails() is a manual/maintenance helper that re-runs
#   thumbnail extraction for stored items that have none.

from __future__ import annotations

import calendar
import hashlib
import html
import json
import logging
import os
import re
import time as _time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional, Tuple, TypedDict, Union
from urllib.parse import urljoin, urlparse

import feedparser
from redis import Redis

from apps.api.app.config import settings
from apps.workers.extractors import ExtractorConfig, extract_thumbnail_url

__all__ = [
    "rss_poll",
    "build_item",
    "entry_html",
    "backfill_thumbnails",
]

log = logging.getLogger("feedthumb.workers")

# =====================================================================
# Redis / env config
# =====================================================================

def _redis() -> Redis:
    """
    Build a Redis client using settings.redis_url (REDIS_URL).
    """
    return Redis.from_url(settings.redis_url, decode_responses=True)

def _rq_redis() -> Redis:
    """
    Raw-bytes client for RQ queues and workers (job payloads are pickles).
    """
    return Redis.from_url(settings.redis_url)

FEED_KEY = settings.feed_key
SEEN_KEY = os.getenv("SEEN_KEY", "feed:seen:z")  # ZSET id -> ingest epoch
SEEN_MAX = int(os.getenv("SEEN_MAX", "5000"))

RSS_MAX_ITEMS = int(os.getenv("RSS_MAX_ITEMS", "30"))
FEED_MAX_ITEMS = int(os.getenv("FEED_MAX_ITEMS", "500"))
REPAIR_SCAN = int(os.getenv("REPAIR_SCAN", "250"))

CONDITIONAL_TTL = 7 * 24 * 3600

# =====================================================================
# Types
# =====================================================================

class FeedItem(TypedDict, total=False):
    id: str                      # sha1 of the normalized link
    url: str
    title: str
    summary: str                 # plain text
    published_at: Optional[str]  # RFC3339 UTC
    source: str                  # "rss:<domain>"
    source_domain: str
    thumb_url: Optional[str]
    content_html: str
    summary_html: str
    ingested_at: str

# =====================================================================
# Helpers
# =====================================================================

_WS_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")

def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

def _to_rfc3339(value: Optional[Union[str, datetime, _time.struct_time]]) -> Optional[str]:
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    if isinstance(value, _time.struct_time):
        epoch = calendar.timegm(value)
        dt = datetime.fromtimestamp(epoch, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%SZ")

    s = str(value).strip()
    if not s:
        return None

    try:
        dt = parsedate_to_datetime(s)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    except (TypeError, ValueError):
        return s

def _domain(url: str) -> str:
    return urlparse(url).netloc.replace("www.", "") or "rss"

def _hash_link(link: str) -> str:
    return hashlib.sha1(link.encode("utf-8", "ignore")).hexdigest()

def _strip_html(s: str) -> str:
    if not s:
        return ""
    s = html.unescape(_TAG_RE.sub(" ", s))
    return _WS_RE.sub(" ", s).strip()

def _thumb_options() -> Tuple[ExtractorConfig, Optional[str], int, int]:
    return (
        settings.extractor_config(),
        settings.thumb_proxy_base,
        settings.thumb_width,
        settings.thumb_height,
    )

# =====================================================================
# Entry → item
# =====================================================================

def entry_html(entry: Dict[str, Any]) -> Tuple[str, str]:
    """
    (content_html, summary_html) for a feedparser entry.
    content is the first content[] value; summary falls back through
    summary_detail → summary → description.
    """
    content_html = ""
    content = entry.get("content")
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict):
            content_html = first.get("value") or ""

    summary_html = (
        (entry.get("summary_detail") or {}).get("value")
        or entry.get("summary")
        or entry.get("description")
        or ""
    )
    return content_html, summary_html

def build_item(entry: Dict[str, Any], feed_url: str) -> Optional[FeedItem]:
    raw_link = entry.get("link") or entry.get("id") or ""
    if not raw_link:
        return None
    link = urljoin(feed_url, raw_link.strip())

    content_html, summary_html = entry_html(entry)
    config, proxy_base, width, height = _thumb_options()
    thumb = extract_thumbnail_url(
        content_html,
        summary_html,
        config=config,
        proxy_base=proxy_base,
        width=width,
        height=height,
    )

    domain = _domain(link)
    return FeedItem(
        id=_hash_link(link),
        url=link,
        title=_strip_html(entry.get("title") or ""),
        summary=_strip_html(summary_html),
        published_at=_to_rfc3339(
            entry.get("published_parsed")
            or entry.get("updated_parsed")
            or entry.get("published")
            or entry.get("updated")
        ),
        source=f"rss:{domain}",
        source_domain=domain,
        thumb_url=thumb,
        content_html=content_html,
        summary_html=summary_html,
        ingested_at=_now_iso(),
    )

# =====================================================================
# Jobs
# =====================================================================

def rss_poll(url: str, max_items: int = RSS_MAX_ITEMS) -> int:
    conn = _redis()
    etag_key = f"rss:etag:{url}"
    mod_key  = f"rss:mod:{url}"

    etag = conn.get(etag_key)
    mod_epoch = conn.get(mod_key)
    modified = _time.gmtime(float(mod_epoch)) if mod_epoch else None

    try:
        parsed = feedparser.parse(url, etag=etag, modified=modified)
    except Exception as e:
        log.error("[rss_poll] ERROR parse %s: %r", url, e)
        return 0

    status = getattr(parsed, "status", 200)
    if status == 304:
        log.info("[rss_poll] url=%s no changes (304)", url)
        return 0

    if getattr(parsed, "etag", None):
        conn.setex(etag_key, CONDITIONAL_TTL, parsed.etag)
    if getattr(parsed, "modified_parsed", None):
        conn.setex(mod_key, CONDITIONAL_TTL, str(calendar.timegm(parsed.modified_parsed)))

    now = _time.time()
    emitted = 0
    with_thumb = 0
    for entry in (parsed.entries or [])[:max_items]:
        item = build_item(entry, url)
        if not item:
            continue
        if not conn.zadd(SEEN_KEY, {item["id"]: now}, nx=True):
            continue
        conn.lpush(FEED_KEY, json.dumps(item, ensure_ascii=False))
        emitted += 1
        if item.get("thumb_url"):
            with_thumb += 1

    if emitted:
        conn.ltrim(FEED_KEY, 0, FEED_MAX_ITEMS - 1)
        # keep only the SEEN_MAX most recently ingested ids
        conn.zremrangebyrank(SEEN_KEY, 0, -(SEEN_MAX + 1))

    log.info("[rss_poll] url=%s emitted=%d with_thumb=%d", url, emitted, with_thumb)
    return emitted

# =====================================================================
# Manual maintenance
# =====================================================================

def backfill_thumbnails(scan: Optional[int] = None) -> int:
    conn = _redis()
    window = int(scan or REPAIR_SCAN)
    config, proxy_base, width, height = _thumb_options()

    items = conn.lrange(FEED_KEY, 0, max(window - 1, 0))
    patched = 0

    for idx, raw in enumerate(items):
        try:
            obj = json.loads(raw)
        except ValueError:
            continue
        if not isinstance(obj, dict) or obj.get("thumb_url"):
            continue

        thumb = extract_thumbnail_url(
            obj.get("content_html"),
            obj.get("summary_html"),
            config=config,
            proxy_base=proxy_base,
            width=width,
            height=height,
        )
        if not thumb:
            continue

        obj["thumb_url"] = thumb
        # Replace by value: rss_poll may LPUSH between our LRANGE and this write.
        pipe = conn.pipeline(True)
        pipe.linsert(FEED_KEY, "BEFORE", raw, json.dumps(obj, ensure_ascii=False))
        pipe.lrem(FEED_KEY, 1, raw)
        inserted, _removed = pipe.execute()
        if inserted <= 0:
            # trimmed away meanwhile
            continue
        patched += 1
        log.info("[backfill_thumbnails] patched idx=%d url=%s", idx, obj.get("url"))

    log.info("[backfill_thumbnails] done patched=%d", patched)
    return patched
