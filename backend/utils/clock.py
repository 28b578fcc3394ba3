import time


class SystemClock:
    """Wall-clock source for round-start stamps (epoch seconds).

    Durations are always derived as ``now() - stored_start`` so a client that
    restarts mid-round picks up the same remaining time as everyone else.
    """

    def now(self) -> float:
        return time.time()


def elapsed_seconds(started_at: float, now: float) -> int:
    """Whole seconds since ``started_at``, never negative (clients' clocks drift)."""
    return max(0, int(now - started_at))


def seconds_remaining(started_at: float, duration: int, now: float) -> int:
    return max(0, duration - elapsed_seconds(started_at, now))


clock = SystemClock()
