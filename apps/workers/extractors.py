from __future__ import annotations
"""
Extractor layer
---------------
Finds the single most likely thumbnail image inside an article's HTML body
(or its plain-text summary). Pure text matching: no DOM, no fetching, no
pixel inspection. Every size check reads declared width/height attributes.

Public API:
    extract_first_image(markup)            -> Optional[str]
    extract_thumbnail_url(content, summary) -> Optional[str]
    ImageExtractor(config).extract(markup)
    ExtractorConfig, DEFAULT_CONFIG
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple

from apps.workers.thumbnails import resolve_thumbnail

__all__ = [
    "ExtractorConfig",
    "DEFAULT_CONFIG",
    "ImageCandidate",
    "ImageExtractor",
    "STRATEGIES",
    "decode_entities",
    "extract_first_image",
    "extract_thumbnail_url",
]

# ============================== Config ===============================

EXTRACT_DEBUG = os.getenv("EXTRACT_DEBUG", "0").lower() not in ("0", "", "false", "no")

# Known non-content images: trackers, placeholders, spacers.
DEFAULT_BLOCK_PATTERNS: Tuple[str, ...] = (
    "grey-placeholder.png",
    "placeholder",
    "spacer.gif",
    "blank.gif",
    "pixel.gif",
    "tracking",
    "analytics",
    "1x1",
    "beacon",
)

# Declared width/height below this marks an icon or decoration.
DEFAULT_MIN_DIMENSION = 100

log = logging.getLogger("feedthumb.extract")


@dataclass(frozen=True)
class ExtractorConfig:
    block_patterns: Tuple[str, ...] = DEFAULT_BLOCK_PATTERNS
    min_dimension: int = DEFAULT_MIN_DIMENSION

    def __post_init__(self) -> None:
        # patterns are compared against a lowercased URL
        object.__setattr__(
            self,
            "block_patterns",
            tuple(p.strip().lower() for p in self.block_patterns if p and p.strip()),
        )


DEFAULT_CONFIG = ExtractorConfig()


class ImageCandidate(NamedTuple):
    url: str
    attrs: str = ""

# ============================== Debug helper =========================

def dlog(msg: str, *kv: object) -> None:
    if EXTRACT_DEBUG:
        details = " | ".join(repr(k) for k in kv) if kv else ""
        log.debug("[extract] %s%s", msg, (" " + details) if details else "")

# ============================== Decoding =============================

# &amp; goes last so "&amp;lt;" ends up as "&lt;", not "<".
_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)

def decode_entities(text: str) -> str:
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text

# ============================== Filters ==============================

_WIDTH_RE = re.compile(r"""width\s*=\s*["']?([0-9]+)["']?""", re.I)
_HEIGHT_RE = re.compile(r"""height\s*=\s*["']?([0-9]+)["']?""", re.I)

def _is_data_uri(url: str) -> bool:
    return url.startswith("data:")

def _is_blocked(url: Optional[str], config: ExtractorConfig) -> bool:
    if not url:
        return True
    lower = url.lower()
    return any(p in lower for p in config.block_patterns)

def _is_too_small(attrs: str, config: ExtractorConfig) -> bool:
    """Only an explicit small value disqualifies; a missing attribute passes."""
    for rx in (_WIDTH_RE, _HEIGHT_RE):
        m = rx.search(attrs)
        if m and int(m.group(1)) < config.min_dimension:
            return True
    return False

# ============================== Strategies ===========================

_IMG_TAG_RE = re.compile(r"<img\s+([^>]+)>", re.I)
_SRC_ATTR_RE = re.compile(r"""src\s*=\s*["']([^"']+)["']""", re.I)
_DATA_SRC_ATTR_RE = re.compile(r"""data-src\s*=\s*["']([^"']+)["']""", re.I)
_WRAPPED_IMG_RE = re.compile(
    r"""<(?:figure|picture)[^>]*>.*?<img[^>]+src\s*=\s*["']([^"']+)["']""",
    re.I | re.S,
)
_SRCSET_RE = re.compile(r"""srcset\s*=\s*["']([^\s"']+)""", re.I)
_BARE_URL_RE = re.compile(
    r"""(https?://[^\s"'<>]+\.(?:jpg|jpeg|png|gif|webp))""",
    re.I,
)

def from_img_tags(text: str, config: ExtractorConfig) -> Optional[ImageCandidate]:
    """
    Strategy A: explicit <img> tags, in document order. src wins over
    data-src. Rejects data: URIs, blocked URLs and declared-small tags.
    """
    for m in _IMG_TAG_RE.finditer(text):
        attrs = m.group(1)
        um = _SRC_ATTR_RE.search(attrs) or _DATA_SRC_ATTR_RE.search(attrs)
        url = um.group(1) if um else None
        if not url or _is_data_uri(url) or _is_blocked(url, config):
            continue
        if _is_too_small(attrs, config):
            dlog("img too small", url)
            continue
        return ImageCandidate(url, attrs)
    return None

def from_figure(text: str, config: ExtractorConfig) -> Optional[ImageCandidate]:
    """Strategy B: first <img src> nested in a <figure>/<picture>. No size check."""
    m = _WRAPPED_IMG_RE.search(text)
    if not m:
        return None
    url = m.group(1)
    if _is_data_uri(url) or _is_blocked(url, config):
        return None
    return ImageCandidate(url)

def from_srcset(text: str, config: ExtractorConfig) -> Optional[ImageCandidate]:
    """Strategy C: first URL of the first srcset, descriptor dropped."""
    m = _SRCSET_RE.search(text)
    if not m:
        return None
    url = m.group(1)
    if _is_data_uri(url) or _is_blocked(url, config):
        return None
    return ImageCandidate(url)

def from_bare_urls(text: str, config: ExtractorConfig) -> Optional[ImageCandidate]:
    """Strategy D: any absolute http(s) URL ending in a known image extension."""
    for m in _BARE_URL_RE.finditer(text):
        url = m.group(1)
        if not _is_blocked(url, config):
            return ImageCandidate(url)
    return None

Strategy = Callable[[str, ExtractorConfig], Optional[ImageCandidate]]

# Strongest signal first.
STRATEGIES: List[Tuple[str, Strategy]] = [
    ("img", from_img_tags),
    ("figure", from_figure),
    ("srcset", from_srcset),
    ("bare_url", from_bare_urls),
]

# ============================== Main entry ===========================

class ImageExtractor:
    """
    Runs the strategies in order over entity-decoded markup and returns the
    first accepted URL, or None.
    """

    def __init__(
        self,
        config: ExtractorConfig = DEFAULT_CONFIG,
        strategies: Optional[Iterable[Tuple[str, Strategy]]] = None,
    ) -> None:
        self.config = config
        self.strategies = list(strategies) if strategies is not None else list(STRATEGIES)

    def extract(self, markup: Optional[str]) -> Optional[str]:
        if not markup or not isinstance(markup, str):
            return None
        text = decode_entities(markup)
        for name, strategy in self.strategies:
            cand = strategy(text, self.config)
            if cand:
                dlog(f"strategy={name}", cand.url)
                return cand.url
        dlog("no candidate", len(text))
        return None


_default_extractor = ImageExtractor()

def extract_first_image(
    markup: Optional[str],
    config: Optional[ExtractorConfig] = None,
) -> Optional[str]:
    if config is None:
        return _default_extractor.extract(markup)
    return ImageExtractor(config).extract(markup)

def extract_thumbnail_url(
    content: Optional[str],
    summary: Optional[str],
    config: Optional[ExtractorConfig] = None,
    proxy_base: Optional[str] = None,
    width: int = 130,
    height: int = 130,
) -> Optional[str]:
    """
    Thumbnail for a feed entry: article content if present, else the summary.
    proxy_base=None keeps the extracted URL as-is.
    """
    image_url = extract_first_image(content or summary or "", config)
    return resolve_thumbnail(image_url, proxy_base=proxy_base, width=width, height=height)
