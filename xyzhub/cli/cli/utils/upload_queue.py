import asyncio
from collections import deque
from collections.abc import Awaitable, Callable

from xyzhub.cli.cli.utils.rich_utils import rich_print_upload_progress
from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.upload import QueuePhase, QueueState, UploadTask

DEFAULT_CONCURRENCY = 10
DEFAULT_HIGH_WATER_MARK = 25


class UploadQueue:
    """
    Bounded queue of upload tasks.

    At most ``concurrency`` uploads run at once, and ``send`` suspends the
    producer while ``high_water_mark`` tasks are pending or in flight. A failing
    upload only adds its features to the ``failed`` counter; it never stops the
    queue.

    Usage:
        queue = UploadQueue(upload)
        await queue.send(task)
        state = await queue.shutdown()
    """

    def __init__(
        self,
        upload: Callable[[UploadTask], Awaitable[object]],
        concurrency: int = DEFAULT_CONCURRENCY,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        on_progress: Callable[[int, int], None] | None = rich_print_upload_progress,
    ):
        if concurrency <= 0 or high_water_mark <= 0:
            raise ValueError("concurrency and high_water_mark must be positive")
        self.upload = upload
        self.concurrency = concurrency
        self.high_water_mark = high_water_mark
        self.on_progress = on_progress

        self.phase = QueuePhase.ACCEPTING
        self.uploaded = 0
        self.failed = 0
        self.in_flight = 0
        self._pending: deque[UploadTask] = deque()
        self._workers: set[asyncio.Task] = set()
        self._condition = asyncio.Condition()

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def outstanding(self) -> int:
        return len(self._pending) + self.in_flight

    @property
    def state(self) -> QueueState:
        return QueueState(
            uploaded=self.uploaded,
            failed=self.failed,
            in_flight=self.in_flight,
            pending=self.pending,
        )

    async def send(self, task: UploadTask) -> None:
        """Enqueue ``task``, waiting while the queue is at its high-water mark."""
        async with self._condition:
            if self.phase is not QueuePhase.ACCEPTING:
                raise RuntimeError(f"upload queue is {self.phase.value}, cannot accept tasks")
            await self._condition.wait_for(lambda: self.outstanding < self.high_water_mark)
            self._pending.append(task)
            logger.debug(
                f"Queued chunk of {task.feature_count} features for space {task.space_id} "
                f"(pending={self.pending}, in_flight={self.in_flight})"
            )
            self._dispatch()

    def _dispatch(self) -> None:
        while self._pending and self.in_flight < self.concurrency:
            task = self._pending.popleft()
            self.in_flight += 1
            worker = asyncio.create_task(self._run(task))
            self._workers.add(worker)
            worker.add_done_callback(self._workers.discard)

    async def _run(self, task: UploadTask) -> None:
        try:
            await self.upload(task)
        except Exception as e:
            logger.error(
                f"Failed to upload chunk of {task.feature_count} features "
                f"to space {task.space_id}: {e}"
            )
            self.failed += task.feature_count
        else:
            self.uploaded += task.feature_count

        async with self._condition:
            self.in_flight -= 1
            if self.on_progress:
                self.on_progress(self.uploaded, self.failed)
            self._dispatch()
            self._condition.notify_all()

    async def shutdown(self) -> QueueState:
        """
        Stop accepting tasks and wait for every pending and in-flight upload.

        Safe to call more than once; later calls return the final state.
        """
        async with self._condition:
            if self.phase is QueuePhase.ACCEPTING:
                self.phase = QueuePhase.DRAINING
            await self._condition.wait_for(lambda: self.outstanding == 0)
            self.phase = QueuePhase.CLOSED
        logger.info(f"Upload queue closed: {self.uploaded} uploaded, {self.failed} failed")
        return self.state
