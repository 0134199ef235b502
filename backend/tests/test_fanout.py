import asyncio

import pytest


def _after(delay, value=None, error=None):
    async def attempt():
        await asyncio.sleep(delay)
        if error is not None:
            raise error
        return value
    return attempt


@pytest.mark.asyncio
async def test_any_of_n_returns_successes_in_completion_order():
    from swapnet.fanout import AnyOfN, fan_out

    results = await fan_out(
        [_after(0.03, "slow"), _after(0.0, error=RuntimeError("boom")), _after(0.01, "fast")],
        AnyOfN(),
    )
    assert results == ["fast", "slow"]


@pytest.mark.asyncio
async def test_any_of_n_raises_last_settled_failure():
    from swapnet.fanout import AnyOfN, fan_out

    last = RuntimeError("settled last")
    with pytest.raises(RuntimeError) as exc_info:
        await fan_out([_after(0.02, error=last), _after(0.0, error=RuntimeError("first"))], AnyOfN())
    assert exc_info.value is last


@pytest.mark.asyncio
async def test_attempts_run_concurrently():
    from swapnet.fanout import BestEffort, fan_out

    loop = asyncio.get_running_loop()
    started = loop.time()
    results = await fan_out([_after(0.05, i) for i in range(4)], BestEffort())

    assert sorted(results) == [0, 1, 2, 3]
    assert loop.time() - started < 0.15


@pytest.mark.asyncio
async def test_best_effort_never_raises():
    from swapnet.fanout import BestEffort, fan_out

    assert await fan_out([_after(0.0, error=ValueError("x")), _after(0.0, error=ValueError("y"))], BestEffort()) == []
    assert await fan_out([], BestEffort()) == []


def test_any_of_n_with_nothing_settled_is_no_image_data():
    from swapnet.errors import NoImageDataError
    from swapnet.fanout import AnyOfN

    with pytest.raises(NoImageDataError):
        AnyOfN().aggregate([], [])
