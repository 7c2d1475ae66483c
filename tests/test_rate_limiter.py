from coupongen.admission import AdmissionController, identity_key
from coupongen.config import Config
from coupongen.rate_limiter import RetryAfter, WindowPolicy
from coupongen.rate_limiter_memory import SlidingWindowLimiter

MIN = 60 * 1000


class FakeClock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


def test_lock_after_max_attempts():
    clock = FakeClock()
    lim = SlidingWindowLimiter(WindowPolicy("t", 10 * MIN, 3, 30 * MIN), clock=clock)
    assert lim.hit("k").allowed
    assert lim.hit("k").allowed
    locked = lim.hit("k")
    assert isinstance(locked, RetryAfter)
    assert locked.retry_after_ms == 30 * MIN
    clock.advance(5 * MIN)
    d = lim.check("k")
    assert not d.allowed and d.retry_after_ms == 25 * MIN
    assert d.retry_after_seconds == 25 * 60


def test_window_resets_counter():
    clock = FakeClock()
    lim = SlidingWindowLimiter(WindowPolicy("t", 10 * MIN, 3, 30 * MIN), clock=clock)
    lim.hit("k")
    lim.hit("k")
    clock.advance(10 * MIN + 1)
    assert lim.check("k").allowed
    assert lim.entry("k").count == 0
    assert lim.hit("k").allowed


def test_attempt_does_not_count_rejections():
    clock = FakeClock()
    lim = SlidingWindowLimiter(WindowPolicy("t", MIN, 2, MIN), clock=clock)
    assert lim.attempt("k").allowed
    assert lim.attempt("k").allowed
    assert not lim.attempt("k").allowed
    assert lim.entry("k").count == 2


def test_retry_after_seconds_rounds_up():
    assert RetryAfter(1).retry_after_seconds == 1
    assert RetryAfter(1001).retry_after_seconds == 2
    err = RetryAfter(2500, limit="login").to_error("too_many")
    assert err.retry_after == 3 and err.limit == "login"


def test_sweep_removes_idle_and_expired_entries():
    clock = FakeClock()
    lim = SlidingWindowLimiter(WindowPolicy("t", 1000, 1, 5000), clock=clock)
    idle = SlidingWindowLimiter(WindowPolicy("t", 1000, 10, 5000), clock=clock)
    idle.hit("a")
    lim.hit("b")  # locks until now + 5000
    clock.advance(2001)
    assert idle.sweep() == 1
    assert lim.sweep() == 0
    clock.advance(5000 + 5000)
    assert lim.sweep() == 1
    assert len(lim) == 0


def _controller(clock, **overrides):
    cfg = Config()
    cfg.override(overrides)
    return AdmissionController(cfg, clock=clock)


def test_login_counts_failures_and_success_clears():
    clock = FakeClock()
    ctl = _controller(clock, login_max_attempts=3)
    ctl.record_login_failure("1.1.1.1")
    ctl.record_login_failure("1.1.1.1")
    ctl.record_login_success("1.1.1.1")
    assert ctl.login.entry("1.1.1.1") is None
    for _ in range(3):
        assert ctl.check_login("1.1.1.1").allowed
        ctl.record_login_failure("1.1.1.1")
    d = ctl.check_login("1.1.1.1")
    assert not d.allowed and d.retry_after_ms == ctl.login.policy.lock_ms
    assert ctl.check_login("2.2.2.2").allowed


def test_twenty_first_submission_from_one_origin_is_rejected():
    clock = FakeClock()
    ctl = _controller(clock)
    for i in range(20):
        assert ctl.check_submission("9.9.9.9", f"user{i}@example.com", 1).allowed
    d = ctl.check_submission("9.9.9.9", "late@example.com", 1)
    assert isinstance(d, RetryAfter)
    assert d.retry_after_ms == 30 * MIN
    assert d.limit == "submit_ip"
    # A different origin is unaffected
    assert ctl.check_submission("8.8.8.8", "late@example.com", 1).allowed


def test_identity_daily_ceiling():
    clock = FakeClock()
    ctl = _controller(clock)
    for i in range(3):
        assert ctl.check_submission(f"10.0.0.{i}", "Anna@Example.com ", 1).allowed
        clock.advance(11 * MIN)
    d = ctl.check_submission("10.0.0.9", "anna@example.com", 1)
    assert not d.allowed and d.limit == "submit_email_daily"
    # Anchored at the first submission of the day
    assert d.retry_after_ms == 24 * 60 * MIN - 33 * MIN
    # Same address in another tenant is a different identity
    assert ctl.check_submission("10.0.0.9", "anna@example.com", 2).allowed
    clock.advance(24 * 60 * MIN)
    assert ctl.check_submission("10.0.0.9", "anna@example.com", 1).allowed


def test_identity_burst_locks_before_daily_ceiling():
    clock = FakeClock()
    ctl = _controller(clock)
    assert ctl.check_submission("10.0.1.1", "bo@example.com", 1).allowed
    assert ctl.check_submission("10.0.1.2", "bo@example.com", 1).allowed
    d = ctl.check_submission("10.0.1.3", "bo@example.com", 1)
    assert isinstance(d, RetryAfter)
    assert d.limit == "submit_email"
    assert d.retry_after_ms == 15 * MIN
    # The rejected attempt is not counted toward the daily ceiling
    assert ctl.submit_identity_daily.entry("1:bo@example.com").count == 2
    clock.advance(15 * MIN)
    assert ctl.check_submission("10.0.1.4", "bo@example.com", 1).allowed
    d = ctl.check_submission("10.0.1.5", "bo@example.com", 1)
    assert not d.allowed and d.limit == "submit_email_daily"


def test_identity_key_normalizes():
    assert identity_key(" A@B.io ", 4) == "4:a@b.io"
    assert identity_key("A@B.io", None) == "a@b.io"


def test_check_admission_kinds():
    clock = FakeClock()
    ctl = _controller(clock, submit_max_per_ip=1)
    assert ctl.check_admission("o", "submit").allowed
    assert not ctl.check_admission("o", "submit").allowed
    assert ctl.check_admission("o", "login").allowed


def test_disabled_admits_everything():
    clock = FakeClock()
    ctl = _controller(clock, rate_limit_disabled=True, submit_max_per_ip=1)
    for _ in range(5):
        assert ctl.check_submission("o", "a@b.io", 1).allowed
