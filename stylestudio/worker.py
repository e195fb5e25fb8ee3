# stylestudio/worker.py

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Union

from config.settings import Settings

from .album import compose_album
from .errors import AlbumIncomplete
from .gemini_client import GeminiClient
from .model import Category, ImagePayload, WorkItem
from .prompt_builder import build_instruction, labels_for
from .store import ItemStore
from .utils import decode_data_uri

logger = logging.getLogger(__name__)


@dataclass
class GenerationRun:
    run_id: int
    category: Category
    source: ImagePayload
    labels: List[str]
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)


class StyleOrchestrator:
    """
    Owns the hairstyle cards of the active run.

    - start_run: resets every label of the category to pending and lets
      `concurrency_limit` workers drain a shared queue
    - retry_item / remix_item: one-off calls outside the pool, touching one label

    Every state change is a full WorkItem replacement in `store`, done without
    any await between reading the old item and writing the new one.
    """

    def __init__(
        self,
        client: GeminiClient,
        concurrency_limit: int = 2,
        store: Optional[ItemStore] = None,
    ):
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.client = client
        self.concurrency_limit = concurrency_limit
        self.store = store or ItemStore()
        self._run: Optional[GenerationRun] = None
        self._run_seq = 0
        self._pool_task: Optional[asyncio.Task] = None
        self._side_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings, **client_kwargs) -> "StyleOrchestrator":
        client = GeminiClient.from_settings(settings, **client_kwargs)
        return cls(client, concurrency_limit=settings.CONCURRENCY_LIMIT)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def category(self) -> Optional[Category]:
        return self._run.category if self._run else None

    @property
    def source_image(self) -> Optional[ImagePayload]:
        return self._run.source if self._run else None

    @property
    def is_running(self) -> bool:
        return (
            self._run is not None
            and self._pool_task is not None
            and not self._pool_task.done()
        )

    def get_item(self, label: str) -> Optional[WorkItem]:
        return self.store.get(label)

    def items(self) -> Dict[str, WorkItem]:
        return self.store.snapshot()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def start_run(
        self, category: Union[Category, str], image: Union[str, ImagePayload]
    ) -> asyncio.Task:
        """
        Replace the active run and start the worker pool.
        Must be called from inside a running event loop.
        Returns the pool task; it finishes once every label was attempted.
        """
        source = image if isinstance(image, ImagePayload) else decode_data_uri(image)
        category = Category(category)
        labels = labels_for(category)

        self._run_seq += 1
        run = GenerationRun(self._run_seq, category, source, labels)
        for label in labels:
            run.queue.put_nowait(label)

        self._run = run
        self.store.replace_all([WorkItem(label=label) for label in labels])
        logger.info(
            "[Worker] Run %d started: category=%s, %d styles, %d workers",
            run.run_id, category.value, len(labels), self.concurrency_limit,
        )

        self._retire_pool()
        self._pool_task = asyncio.create_task(self._run_pool(run))
        return self._pool_task

    async def _run_pool(self, run: GenerationRun) -> None:
        workers = [
            asyncio.create_task(self._worker_loop(i, run))
            for i in range(self.concurrency_limit)
        ]
        await asyncio.gather(*workers)
        logger.info("[Worker] Run %d finished", run.run_id)

    async def _worker_loop(self, worker_id: int, run: GenerationRun) -> None:
        logger.debug("[Worker %d] Started (run %d)", worker_id, run.run_id)
        while self._is_current(run):
            try:
                label = run.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            logger.debug("[Worker %d] Processing %s", worker_id, label)
            await self._generate_label(run, label)

    async def _generate_label(self, run: GenerationRun, label: str) -> None:
        instruction = build_instruction(label, run.category)
        try:
            image = await self.client.generate(
                run.source, instruction, label, run.category.value
            )
        except Exception as e:
            logger.exception("[Worker] Failed to generate image for %s", label)
            self._commit(run, WorkItem(label=label, status="error", error_message=str(e)))
        else:
            self._commit(run, WorkItem(label=label, status="done", image=image))

    # ------------------------------------------------------------------
    # Per-item operations
    # ------------------------------------------------------------------

    def retry_item(self, label: str) -> Optional[asyncio.Task]:
        """
        Regenerate one label outside the pool.
        No-op (returns None) when there is no run, the label is unknown or
        the item is still pending.
        """
        run = self._run
        current = self.store.get(label)
        if run is None or current is None or current.status == "pending":
            return None

        logger.info("[Worker] Regenerating image for %s...", label)
        self.store.set(WorkItem(label=label))
        return self._spawn(self._generate_label(run, label))

    def remix_item(self, label: str, instruction: str) -> Optional[asyncio.Task]:
        """
        Modify the current image of one label with a free-form instruction.
        No-op (returns None) without a previous image, while pending, or for
        a blank instruction. The previous image stays visible while pending
        and after a failure.
        """
        run = self._run
        current = self.store.get(label)
        if (
            run is None
            or current is None
            or current.image is None
            or current.status == "pending"
            or not instruction
            or not instruction.strip()
        ):
            return None

        previous = current.image
        logger.info('[Worker] Remixing image for %s with prompt: "%s"', label, instruction)
        self.store.set(WorkItem(label=label, status="pending", image=previous))
        return self._spawn(self._remix_label(run, label, previous, instruction))

    async def _remix_label(
        self, run: GenerationRun, label: str, previous: ImagePayload, instruction: str
    ) -> None:
        try:
            image = await self.client.remix(previous, instruction)
        except Exception as e:
            logger.exception("[Worker] Failed to remix image for %s", label)
            self._commit(
                run,
                WorkItem(label=label, status="error", image=previous, error_message=str(e)),
            )
        else:
            self._commit(run, WorkItem(label=label, status="done", image=image))

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Forget the photo, the category and every card."""
        self._run = None
        self._retire_pool()
        self.store.clear()
        logger.info("[Worker] Session reset")

    def album(self, title: str = "Hairstyle Studio") -> ImagePayload:
        run = self._run
        if run is None:
            raise AlbumIncomplete("No generation run to build an album from")

        images: Dict[str, ImagePayload] = {}
        for label in run.labels:
            item = self.store.get(label)
            if item is None or item.status != "done" or item.image is None:
                raise AlbumIncomplete(
                    "Please wait for all images to finish generating before downloading the album."
                )
            images[label] = item.image
        return compose_album(images, title=title)

    async def join(self) -> None:
        """Wait for the pool and every retry/remix currently in flight."""
        while True:
            pending = [t for t in (self._pool_task, *self._side_tasks) if t and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_current(self, run: GenerationRun) -> bool:
        return self._run is run

    def _commit(self, run: GenerationRun, item: WorkItem) -> None:
        if not self._is_current(run):
            logger.debug("[Worker] Dropping %s result from superseded run %d", item.label, run.run_id)
            return
        self.store.set(item)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._side_tasks.add(task)
        task.add_done_callback(self._side_tasks.discard)
        return task

    def _retire_pool(self) -> None:
        # A superseded pool keeps draining in-flight calls; join still waits on it
        task, self._pool_task = self._pool_task, None
        if task is not None and not task.done():
            self._side_tasks.add(task)
            task.add_done_callback(self._side_tasks.discard)
