"""Click fraud signals: bot user agents and per-IP request rate.

Both signals are soft. The rate limiter lives in process memory and resets on
restart; in a multi-instance deployment each instance enforces its own window.
"""
from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from linkpay.config import settings


BOT_SCORE = 100
RATE_LIMIT_PENALTY = 50

# Ordered: the first matching signature is recorded as the bot type.
BOT_SIGNATURES: tuple[tuple[str, str], ...] = (
    ("headless", r"headless"),
    ("phantomjs", r"phantomjs"),
    ("selenium", r"selenium|webdriver"),
    ("puppeteer", r"puppeteer"),
    ("playwright", r"playwright"),
    ("lighthouse", r"lighthouse|pagespeed"),
    ("preview", r"facebookexternalhit|slackbot|twitterbot|whatsapp|telegrambot|discordbot|embedly|skypeuripreview"),
    ("search-engine", r"googlebot|bingbot|yandex|baiduspider|duckduckbot|slurp|applebot|petalbot|sogou"),
    ("seo-crawler", r"ahrefs|semrush|mj12bot|dotbot|screaming frog|rogerbot|serpstat"),
    ("monitor", r"pingdom|uptimerobot|statuscake|site24x7|newrelicpinger|datadog"),
    ("http-library", r"python-requests|python-urllib|python-httpx|aiohttp|httpx|curl/|wget|go-http-client|okhttp|"
                     r"java/|apache-httpclient|libwww-perl|node-fetch|axios/|undici|guzzlehttp|ruby|scrapy"),
    ("generic", r"(?<!cu)bot\b|bot/|crawl|spider|scraper|archiver|fetcher|^mozilla/5\.0$"),
)

_BOT_PATTERNS = tuple((name, re.compile(pattern, re.IGNORECASE)) for name, pattern in BOT_SIGNATURES)


def match_bot_signature(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    candidate = user_agent.strip()
    if not candidate or candidate.lower() == "unknown":
        return None
    for name, pattern in _BOT_PATTERNS:
        if pattern.search(candidate):
            return name
    return None


def classify_bot(user_agent: Optional[str]) -> bool:
    return match_bot_signature(user_agent) is not None


class RateLimiter(Protocol):
    def check(self, ip: str) -> bool:
        """Record one request from ``ip``; True while it is within the limit."""
        ...


@dataclass
class _Window:
    count: int
    window_start: float


class SlidingWindowRateLimiter:
    """Per-IP request counter over a fixed window restarted on expiry.

    The count after increment is compared to the threshold, so with the
    default settings the 11th request inside one minute is the first to fail.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}

    def check(self, ip: str) -> bool:
        with self._lock:
            now = self._clock()
            window = self._windows.get(ip)
            if window is None:
                window = _Window(count=0, window_start=now)
                self._windows[ip] = window

            if now - window.window_start > self.window_seconds:
                window.count = 1
                window.window_start = now
            else:
                window.count += 1

            return window.count <= self.max_requests

    def prune(self) -> int:
        """Drop expired windows; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [ip for ip, w in self._windows.items() if now - w.window_start > self.window_seconds]
            for ip in expired:
                del self._windows[ip]
            return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


@dataclass(frozen=True)
class FraudVerdict:
    is_bot: bool
    within_limit: bool
    fraud_score: int
    bot_type: Optional[str] = None


def compute_fraud_score(is_bot: bool, within_limit: bool) -> int:
    score = 0
    if not within_limit:
        score += RATE_LIMIT_PENALTY
    if is_bot:
        # A bot is always fully flagged, whatever the rate state.
        score = BOT_SCORE
    return score


def score_click(user_agent: Optional[str], ip: str, limiter: RateLimiter) -> FraudVerdict:
    bot_type = match_bot_signature(user_agent)
    is_bot = bot_type is not None
    within_limit = limiter.check(ip)
    return FraudVerdict(
        is_bot=is_bot,
        within_limit=within_limit,
        fraud_score=compute_fraud_score(is_bot, within_limit),
        bot_type=bot_type,
    )


_rate_limiter: Optional[SlidingWindowRateLimiter] = None


def get_rate_limiter() -> SlidingWindowRateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = SlidingWindowRateLimiter(
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
        )
    return _rate_limiter
