from __future__ import annotations

import asyncio
import logging
import typing

logger = logging.getLogger(__name__)
T = typing.TypeVar("T")

Sleep = typing.Callable[[float], typing.Awaitable[typing.Any]]
OutcomeCallback = typing.Callable[["Outcome"], typing.Any]


class Outcome(typing.NamedTuple):
    phase: str
    name: str
    ok: bool
    message: str | None = None
    value: typing.Any = None


class _Job(typing.NamedTuple):
    phase: str
    name: str
    category: str | None
    factory: typing.Callable[[], typing.Awaitable[typing.Any]]
    future: asyncio.Future[Outcome]


class PacedExecutor:
    """Runs write calls one at a time and waits a fixed interval after each.

    Every call is attempted exactly once. Failures are recorded as an
    :class:`Outcome` instead of being raised, so a caller iterating over many
    entities keeps going after one of them fails.
    """

    queue: asyncio.Queue[_Job]
    outcomes: list[Outcome]
    task: asyncio.Task[None] | None = None

    def __init__(
        self,
        intervals: typing.Mapping[str, float],
        *,
        sleep: Sleep | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        self.intervals = dict(intervals)
        self.sleep = asyncio.sleep if sleep is None else sleep
        self.on_outcome = on_outcome
        self.queue = asyncio.Queue()
        self.outcomes = []

    async def __aenter__(self) -> PacedExecutor:
        self.start()
        return self

    async def __aexit__(self, *exc_info: typing.Any) -> None:
        await self.close()

    def start(self) -> None:
        if self.task is None:
            self.task = asyncio.create_task(self.worker(), name="PacedExecutor")

    async def close(self) -> None:
        if self.task is None:
            return
        if not self.task.done():
            await self.queue.join()
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        self.task = None

    async def submit(
        self,
        phase: str,
        name: str,
        factory: typing.Callable[[], typing.Awaitable[T]],
        *,
        category: str | None = None,
    ) -> Outcome:
        if self.task is None:
            raise RuntimeError("executor is not running")
        future: asyncio.Future[Outcome] = asyncio.get_running_loop().create_future()
        self.queue.put_nowait(_Job(phase, name, category, factory, future))
        return await future

    async def worker(self) -> None:
        while True:
            job = await self.queue.get()
            try:
                outcome = await self.attempt(job)
                if not job.future.done():
                    job.future.set_result(outcome)

                interval = self.intervals.get(job.category, 0) if job.category else 0
                if interval > 0:
                    await self.sleep(interval)
            finally:
                self.queue.task_done()

    async def attempt(self, job: _Job) -> Outcome:
        try:
            value = await job.factory()
        except Exception as e:
            outcome = Outcome(job.phase, job.name, False, str(e) or type(e).__name__)
            logger.warning(f"{job.phase}: failed {job.name!r}: {outcome.message}")
        else:
            outcome = Outcome(job.phase, job.name, True, value=value)
            logger.debug(f"{job.phase}: done {job.name!r}")

        self.record(outcome)
        return outcome

    def record(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)
        if self.on_outcome is None:
            return
        try:
            self.on_outcome(outcome)
        except Exception as e:
            logger.exception("Error in outcome callback", exc_info=e)
