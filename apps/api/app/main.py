# apps/api/app/main.py
#
# FEEDTHUMB PUBLIC API
#
#   workers    → rss_poll() builds feed items (with thumb_url) into FEED_KEY
#   api (THIS FILE) → /v1/feed, /v1/thumbnail
#                      * /v1/feed ONLY reads from FEED_KEY
#                      * /v1/thumbnail runs the same extractor the workers use,
#                        so clients can preview a thumbnail for raw HTML

from __future__ import annotations

import json
import logging
from typing import Iterable, List, Optional

import redis
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from apps.api.app.config import settings  # central env/config (redis_url, feed_key, thumbs)
from apps.workers.extractors import extract_thumbnail_url

log = logging.getLogger("feedthumb.api")

# -----------------------------------------------------------------------------
# Redis client (shared with workers)
# -----------------------------------------------------------------------------

_redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_timeout=2.0,
    socket_connect_timeout=2.0,
)

FEED_KEY = settings.feed_key  # Redis LIST newest-first (LPUSH by workers)

# -----------------------------------------------------------------------------
# Pydantic models
# -----------------------------------------------------------------------------

class FeedItem(BaseModel):
    id: str
    url: str
    title: str = ""
    summary: Optional[str] = None
    published_at: Optional[str] = None
    source: Optional[str] = None
    source_domain: Optional[str] = None
    thumb_url: Optional[str] = None
    ingested_at: Optional[str] = None


class FeedResponse(BaseModel):
    items: List[FeedItem]


class ThumbnailRequest(BaseModel):
    content: Optional[str] = None
    summary: Optional[str] = None


class ThumbnailResponse(BaseModel):
    thumb_url: Optional[str] = None


class ErrorBody(BaseModel):
    ok: bool = False
    status: int
    error: str
    message: str

# -----------------------------------------------------------------------------
# FastAPI app + CORS
# -----------------------------------------------------------------------------

app = FastAPI(
    title="FeedThumb API",
    version="0.3.0",
    description=(
        "Feed items with extracted thumbnails (/v1/feed) and an on-demand "
        "thumbnail extractor for raw article HTML (/v1/thumbnail)."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------------------------------------------------------
# Error handlers
# -----------------------------------------------------------------------------

def _json_error(status_code: int, err: str, msg: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorBody(status=status_code, error=err, message=msg).model_dump(),
    )

@app.exception_handler(HTTPException)
async def http_exc_handler(_: Request, exc: HTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else json.dumps(exc.detail)
    return _json_error(exc.status_code, "http_error", detail)

@app.exception_handler(RequestValidationError)
async def validation_exc_handler(_: Request, exc: RequestValidationError):
    return _json_error(422, "validation_error", exc.errors().__repr__())

@app.exception_handler(Exception)
async def unhandled_exc_handler(_: Request, exc: Exception):
    log.exception("[api] unhandled error")
    return _json_error(500, exc.__class__.__name__, "Internal server error")

# -----------------------------------------------------------------------------
# Feed helpers
# -----------------------------------------------------------------------------

def _redis_lrange(key: str, start: int, stop: int) -> list[str]:
    try:
        return _redis_client.lrange(key, start, stop)
    except redis.RedisError as e:
        raise HTTPException(
            status_code=503, detail=f"Redis unavailable: {type(e).__name__}"
        ) from e

def _iter_feed(limit: int) -> Iterable[dict]:
    for s in _redis_lrange(FEED_KEY, 0, max(0, limit - 1)):
        try:
            obj = json.loads(s)
        except ValueError:
            continue
        if isinstance(obj, dict) and obj.get("id") and obj.get("url"):
            yield obj

# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

@app.get("/health")
def health() -> dict:
    return {"ok": True}

@app.get("/v1/feed", response_model=FeedResponse)
def feed(
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
) -> FeedResponse:
    return FeedResponse(items=[FeedItem(**it) for it in _iter_feed(limit)])

@app.post("/v1/thumbnail", response_model=ThumbnailResponse)
def thumbnail(req: ThumbnailRequest) -> ThumbnailResponse:
    thumb = extract_thumbnail_url(
        req.content,
        req.summary,
        config=settings.extractor_config(),
        proxy_base=settings.thumb_proxy_base,
        width=settings.thumb_width,
        height=settings.thumb_height,
    )
    return ThumbnailResponse(thumb_url=thumb)
