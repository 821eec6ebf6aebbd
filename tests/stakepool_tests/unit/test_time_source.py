import pytest

from stakepool.core.time_source import ManualTickSource, read_tick


def test_manual_source_advances():
    clock = ManualTickSource(5)
    assert clock() == 5
    assert clock.advance() == 6
    assert clock.advance(4) == 10
    assert clock.advance_to(10) == 10
    assert clock.advance_to(12) == 12
    assert clock.tick == 12


def test_manual_source_is_monotonic():
    clock = ManualTickSource(10)
    with pytest.raises(ValueError, match="monotonic"):
        clock.advance_to(9)
    with pytest.raises(ValueError):
        clock.advance(-1)
    assert clock.tick == 10


def test_negative_start_is_rejected():
    with pytest.raises(ValueError):
        ManualTickSource(-1)


def test_read_tick_accepts_integral_values():
    assert read_tick(lambda: 7) == 7
    assert read_tick(lambda: 7.0) == 7


@pytest.mark.parametrize("bad", [lambda: -1, lambda: "later", lambda: None, lambda: 12.9, lambda: True])
def test_read_tick_rejects_invalid_ticks(bad):
    with pytest.raises(ValueError):
        read_tick(bad)
