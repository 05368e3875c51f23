import threading

from edupage.backoff import BackoffController, get_backoff, reset_backoff


def test_first_failure_waits_one_base_unit(backoff, clock):
    delay = backoff.record_failure('boom')

    assert delay == 300.0
    assert not backoff.may_proceed()
    clock.advance(299)
    assert not backoff.may_proceed()
    clock.advance(1)
    assert backoff.may_proceed()


def test_release_opens_gate_but_keeps_escalation(backoff, clock):
    backoff.record_failure('captcha', 3600.0)

    backoff.release('captcha solved')

    assert backoff.may_proceed()
    assert backoff.snapshot().failures == 1
    assert backoff.record_failure('again') == 600.0


def test_delay_doubles_per_failure():
    b = BackoffController(base=300.0, cap=21600.0)

    assert [b.delay_for(n) for n in (1, 2, 3, 4)] == [300.0, 600.0, 1200.0, 2400.0]


def test_fourth_failure_is_eight_units_capped(clock):
    b = BackoffController(base=300.0, cap=1800.0, clock=clock)
    for _ in range(3):
        b.record_failure('x')

    assert b.record_failure('x') == 1800.0
    assert b.snapshot().failures == 4


def test_suggested_minimum_wins_when_larger(backoff):
    assert backoff.record_failure('captcha', 3600.0) == 3600.0
    assert backoff.remaining() == 3600.0
    assert backoff.record_failure('small hint', 1.0) == 600.0


def test_resume_time_never_moves_backwards(backoff, clock):
    backoff.record_failure('captcha', 3600.0)
    first = backoff.snapshot().resume_not_before

    backoff.record_failure('short', 0)

    assert backoff.snapshot().resume_not_before == first


def test_success_resets_everything(backoff):
    backoff.record_failure('a')
    backoff.record_failure('b')

    backoff.record_success()

    state = backoff.snapshot()
    assert state.failures == 0
    assert state.resume_not_before == 0.0
    assert state.last_reason == ''
    assert backoff.may_proceed()


def test_failure_counter_saturates(clock):
    b = BackoffController(base=1.0, cap=10_000.0, clock=clock)
    for _ in range(25):
        b.record_failure('x')

    assert b.snapshot().failures == 10


def test_may_proceed_has_no_side_effects(backoff):
    backoff.record_failure('x')
    before = backoff.snapshot()

    for _ in range(5):
        backoff.may_proceed()

    assert backoff.snapshot() == before


def test_concurrent_failures_are_all_counted(clock):
    b = BackoffController(base=1.0, cap=10.0, clock=clock)
    threads = [threading.Thread(target=b.record_failure, args=('t',)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert b.snapshot().failures == 8


def test_process_wide_instance_is_shared():
    reset_backoff()
    try:
        assert get_backoff() is get_backoff()
    finally:
        reset_backoff()
