from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

OUTPUT_FORMATS = ("text", "jsonl")


@dataclass(frozen=True)
class CrawlConfig:
    """Run parameters handed to the crawler core. None means "use the site default"."""

    site: str
    output: str = "records.txt"
    output_format: str = "text"
    start: Optional[int] = None
    max_pages: Optional[int] = None
    timeout: float = 20.0
    user_agent: str = "Mozilla/5.0"
    concurrency: int = 1
    qps: float = 0.0
    max_attempts: int = 3
    max_rate_limit_retries: Optional[int] = None
    max_rate_limit_wait: Optional[float] = None
    default_rate_limit_wait: Optional[float] = None
    stop_after_empty_pages: Optional[int] = None
    impersonate: Optional[str] = None
    auth_env: Optional[str] = None
    echo: bool = True
    metrics_out: Optional[str] = None

    def validate(self) -> "CrawlConfig":
        if not self.site:
            raise ValueError("site is required")
        if not self.output:
            raise ValueError("output path is required")
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"output_format must be one of {', '.join(OUTPUT_FORMATS)}")
        if self.max_pages is not None and self.max_pages < 0:
            raise ValueError("max_pages must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.qps < 0:
            raise ValueError("qps must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.max_rate_limit_retries is not None and self.max_rate_limit_retries < 0:
            raise ValueError("max_rate_limit_retries must be >= 0")
        for name in ("max_rate_limit_wait", "default_rate_limit_wait"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.stop_after_empty_pages is not None and self.stop_after_empty_pages < 1:
            raise ValueError("stop_after_empty_pages must be >= 1")
        return self
