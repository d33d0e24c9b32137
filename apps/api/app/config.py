from typing import List

from pydantic_settings import BaseSettings

from apps.workers.extractors import (
    DEFAULT_BLOCK_PATTERNS,
    DEFAULT_MIN_DIMENSION,
    ExtractorConfig,
)


class Settings(BaseSettings):
    # runtime env
    env: str = "dev"

    # backing store
    redis_url: str = "redis://redis:6379/0"

    # feed / cache config (must match workers)
    feed_key: str = "feed:items"
    default_page_size: int = 50  # how many items /v1/feed returns by default
    max_page_size: int = 100     # hard cap so nobody requests 10k

    # thumbnail extraction
    thumb_block_patterns: List[str] = list(DEFAULT_BLOCK_PATTERNS)
    thumb_min_dimension: int = DEFAULT_MIN_DIMENSION

    # thumbnail proxy (unset = hand out original image URLs)
    thumb_proxy_base: str | None = None
    thumb_width: int = 130
    thumb_height: int = 130

    class Config:
        env_file = ".env"

    def extractor_config(self) -> ExtractorConfig:
        return ExtractorConfig(
            block_patterns=tuple(self.thumb_block_patterns),
            min_dimension=self.thumb_min_dimension,
        )


settings = Settings()
