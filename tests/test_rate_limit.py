from starlette.requests import Request

from funnel_builder.services.rate_limit import (
    RATE_LIMIT_MESSAGE,
    RateLimitRule,
    SlidingWindowRateLimiter,
    check_rate_limit,
    get_rate_limit_identifier,
)


def _request(headers: dict[str, str]) -> Request:
    raw = [(key.lower().encode(), value.encode()) for key, value in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


def test_identifier_prefers_user_then_forwarded_then_real_ip():
    assert get_rate_limit_identifier(_request({"x-forwarded-for": "1.1.1.1"}), "u1") == "user:u1"
    assert get_rate_limit_identifier(_request({"x-forwarded-for": "1.1.1.1, 2.2.2.2"})) == "ip:1.1.1.1"
    assert get_rate_limit_identifier(_request({"x-forwarded-for": "", "x-real-ip": "3.3.3.3"})) == "ip:3.3.3.3"
    assert get_rate_limit_identifier(_request({})) == "ip:anonymous"


def test_sliding_window_expires_old_calls():
    now = [1000.0]
    limiter = SlidingWindowRateLimiter(clock=lambda: now[0])
    rule = RateLimitRule(limit=2, window_seconds=60)

    assert limiter.hit(("chat", "a"), rule).allowed
    assert limiter.hit(("chat", "a"), rule).remaining == 0
    blocked = limiter.hit(("chat", "a"), rule)
    assert not blocked.allowed
    assert blocked.reset_at == 1060.0

    # Other identifiers are tracked separately.
    assert limiter.hit(("chat", "b"), rule).allowed

    now[0] = 1060.0
    assert limiter.hit(("chat", "a"), rule).allowed


def test_check_rate_limit_returns_429_response_after_limit():
    for _ in range(5):
        assert check_rate_limit("user:limited", "presentation-generation") is None
    response = check_rate_limit("user:limited", "presentation-generation")
    assert response is not None
    assert response.status_code == 429
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert "Retry-After" in response.headers
    assert RATE_LIMIT_MESSAGE.encode() in response.body


def test_unknown_endpoint_uses_default_rule():
    for _ in range(20):
        assert check_rate_limit("user:default", "something-else") is None
    assert check_rate_limit("user:default", "something-else") is not None


def test_idle_identifiers_are_swept():
    now = [0.0]
    limiter = SlidingWindowRateLimiter(clock=lambda: now[0])
    rule = RateLimitRule(limit=5, window_seconds=60)

    for index in range(500):
        limiter.hit(("scraping", f"ip:10.0.{index // 256}.{index % 256}"), rule)
    assert limiter.tracked_keys == 500

    now[0] = 30.0
    limiter.hit(("scraping", "ip:recent"), rule)
    assert limiter.tracked_keys == 501

    now[0] = 3600.0
    limiter.hit(("scraping", "ip:later"), rule)
    assert limiter.tracked_keys == 1
