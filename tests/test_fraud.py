import pytest

from linkpay.services.fraud import (
    BOT_SCORE,
    RATE_LIMIT_PENALTY,
    SlidingWindowRateLimiter,
    classify_bot,
    compute_fraud_score,
    match_bot_signature,
    score_click,
)


CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FixedLimiter:
    def __init__(self, allow: bool):
        self.allow = allow
        self.seen = []

    def check(self, ip: str) -> bool:
        self.seen.append(ip)
        return self.allow


@pytest.mark.parametrize(
    "user_agent,expected",
    [
        ("Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)", "search-engine"),
        ("Mozilla/5.0 (X11; Linux x86_64) HeadlessChrome/120.0.0.0 Safari/537.36", "headless"),
        ("python-requests/2.31.0", "http-library"),
        ("curl/8.4.0", "http-library"),
        ("facebookexternalhit/1.1", "preview"),
        ("Mozilla/5.0 (compatible; AhrefsBot/7.0)", "seo-crawler"),
        ("SomeCustomCrawler/1.0", "generic"),
    ],
)
def test_match_bot_signature_known_agents(user_agent, expected) -> None:
    assert match_bot_signature(user_agent) == expected
    assert classify_bot(user_agent) is True


@pytest.mark.parametrize("user_agent", [CHROME_UA, IPHONE_UA, "", None, "unknown"])
def test_browsers_and_missing_agents_are_not_bots(user_agent) -> None:
    assert classify_bot(user_agent) is False


def test_rate_limiter_eleventh_request_in_window_fails() -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=10, clock=FakeClock())
    results = [limiter.check("1.2.3.4") for _ in range(11)]
    assert results[:10] == [True] * 10
    assert results[10] is False


def test_rate_limiter_window_restarts_after_expiry() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=2, clock=clock)
    assert limiter.check("1.2.3.4") is True
    assert limiter.check("1.2.3.4") is True
    assert limiter.check("1.2.3.4") is False

    clock.now += 61
    assert limiter.check("1.2.3.4") is True


def test_rate_limiter_tracks_ips_independently() -> None:
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=1, clock=FakeClock())
    assert limiter.check("10.0.0.1") is True
    assert limiter.check("10.0.0.2") is True
    assert limiter.check("10.0.0.1") is False


def test_rate_limiter_prune_drops_expired_windows() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=5, clock=clock)
    limiter.check("10.0.0.1")
    clock.now += 30
    limiter.check("10.0.0.2")
    clock.now += 40
    assert limiter.prune() == 1
    assert limiter.prune() == 0


@pytest.mark.parametrize(
    "is_bot,within_limit,expected",
    [
        (False, True, 0),
        (False, False, RATE_LIMIT_PENALTY),
        (True, True, BOT_SCORE),
        (True, False, BOT_SCORE),
    ],
)
def test_compute_fraud_score(is_bot, within_limit, expected) -> None:
    assert compute_fraud_score(is_bot, within_limit) == expected


def test_score_click_combines_signals() -> None:
    limiter = FixedLimiter(allow=False)
    verdict = score_click(CHROME_UA, "5.6.7.8", limiter)
    assert verdict.is_bot is False
    assert verdict.within_limit is False
    assert verdict.fraud_score == 50
    assert limiter.seen == ["5.6.7.8"]

    bot_verdict = score_click("Googlebot/2.1", "5.6.7.8", FixedLimiter(allow=False))
    assert bot_verdict.fraud_score == 100
    assert bot_verdict.bot_type == "search-engine"
