from tracker.sequencing import RequestSequencer, poll_until


def test_only_latest_token_applies():
    seq = RequestSequencer()
    first = seq.issue()
    second = seq.issue()
    applied = []
    assert seq.apply_if_current(first, lambda: applied.append("first")) is False
    assert seq.apply_if_current(second, lambda: applied.append("second")) is True
    assert applied == ["second"]
    assert seq.latest == second
    assert not seq.is_current(first)


def test_poll_until_returns_first_hit():
    sleeps = []
    answers = iter([None, None, "found"])
    result = poll_until(lambda: next(answers), sleep=sleeps.append)
    assert result == "found"
    assert sleeps == [0.2, 0.15, 0.15]


def test_poll_until_gives_up_after_max_attempts():
    sleeps = []
    calls = []

    def check():
        calls.append(1)
        return None

    assert poll_until(check, max_attempts=30, sleep=sleeps.append) is None
    assert len(calls) == 31
    assert len(sleeps) == 31
