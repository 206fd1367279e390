"""Run a set of background services together until one of them ends."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

Service = Callable[[], Awaitable[object]]


class ServiceRunner:
    """Runs services concurrently; when any one returns, the others are cancelled.

    A service is an async callable taking no arguments. It is asked to stop
    by cancellation of its task.
    """

    def __init__(self, *services: Service):
        self._services = list(services)

    async def run(self) -> None:
        """Run all services and wait for every one of them to finish.

        Errors raised by services (other than cancellation) are collected and
        raised together as an exception group.
        """
        if not self._services:
            return

        tasks = [asyncio.create_task(service()) for service in self._services]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        errors = [
            task.exception()
            for task in tasks
            if not task.cancelled() and task.exception() is not None
        ]
        errors = [err for err in errors if not isinstance(err, asyncio.CancelledError)]
        if errors:
            raise BaseExceptionGroup("one or more services failed", errors)