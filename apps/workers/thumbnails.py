# apps/workers/thumbnails.py
#
# Extracted image URL -> URL handed to clients.
# Default is a straight pass-through (the client loads the original image).
# With a proxy base configured, absolute URLs are wrapped as
#   <base>?url=<quoted>&w=<w>&h=<h>
# Relative URLs are left untouched; data: URIs are never served.

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs, quote, urlparse

__all__ = ["resolve_thumbnail", "to_proxy"]


def to_proxy(u: str, proxy_base: str, width: int = 130, height: int = 130) -> str:
    if not (u.startswith("http://") or u.startswith("https://")):
        return u
    # Already proxied? (an image that merely lives on the proxy host is not)
    if u.startswith(proxy_base.rstrip("?")) and "url" in parse_qs(urlparse(u).query):
        return u
    sep = "&" if "?" in proxy_base else "?"
    return f"{proxy_base}{sep}url={quote(u, safe='')}&w={int(width)}&h={int(height)}"


def resolve_thumbnail(
    url: Optional[str],
    proxy_base: Optional[str] = None,
    width: int = 130,
    height: int = 130,
) -> Optional[str]:
    if not url:
        return None
    if url.startswith("data:"):
        return None
    if not proxy_base:
        return url
    return to_proxy(url, proxy_base, width, height)
