import asyncio

import pytest

from francis.servicerunner import ServiceRunner


@pytest.mark.asyncio
async def test_successful_services():
    finished = []

    async def success_service():
        await asyncio.sleep(0.2)
        finished.append(True)

    runner = ServiceRunner(success_service, success_service)
    result = await asyncio.wait_for(runner.run(), 5)
    assert result is None
    assert len(finished) >= 1


@pytest.mark.asyncio
async def test_service_with_error():
    expected = RuntimeError("service failed")

    async def error_service():
        raise expected

    async def success_service():
        await asyncio.sleep(0.2)

    runner = ServiceRunner(error_service, success_service)
    with pytest.raises(ExceptionGroup) as info:
        await asyncio.wait_for(runner.run(), 5)
    assert info.value.exceptions == (expected,)


@pytest.mark.asyncio
async def test_finishing_service_stops_others():
    observed = []

    async def waiting_service():
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            observed.append("cancelled")
            raise

    async def quick_service():
        return None

    runner = ServiceRunner(waiting_service, quick_service)
    result = await asyncio.wait_for(runner.run(), 5)
    assert result is None
    assert observed == ["cancelled"]


@pytest.mark.asyncio
async def test_outer_cancellation_stops_services():
    observed = []
    started = asyncio.Event()

    async def waiting_service():
        started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            observed.append("cancelled")
            raise

    runner = ServiceRunner(waiting_service)
    task = asyncio.create_task(runner.run())
    await started.wait()
    task.cancel()
    outcome = await asyncio.gather(task, return_exceptions=True)
    assert isinstance(outcome[0], asyncio.CancelledError)
    assert task.cancelled() is True
    assert observed == ["cancelled"]


@pytest.mark.asyncio
async def test_multiple_errors():
    err1 = RuntimeError("error 1")
    err2 = ValueError("error 2")

    async def service1():
        raise err1

    async def service2():
        raise err2

    runner = ServiceRunner(service1, service2)
    with pytest.raises(ExceptionGroup) as info:
        await asyncio.wait_for(runner.run(), 5)
    assert set(info.value.exceptions) == {err1, err2}


@pytest.mark.asyncio
async def test_no_services():
    runner = ServiceRunner()
    assert await runner.run() is None