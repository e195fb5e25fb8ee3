# stylestudio/store.py

import logging
from typing import Callable, Dict, List, Optional

from .model import WorkItem

logger = logging.getLogger(__name__)

Listener = Callable[[str, Optional[WorkItem]], None]


class ItemStore:
    """
    label -> WorkItem map that tells subscribers about every replacement.
    A listener gets (label, new_item); new_item is None when the store is cleared.
    """

    def __init__(self):
        self._items: Dict[str, WorkItem] = {}
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get(self, label: str) -> Optional[WorkItem]:
        return self._items.get(label)

    def set(self, item: WorkItem) -> None:
        self._items[item.label] = item
        self._notify(item.label, item)

    def replace_all(self, items: List[WorkItem]) -> None:
        self.clear()
        for item in items:
            self.set(item)

    def clear(self) -> None:
        labels = list(self._items)
        self._items = {}
        for label in labels:
            self._notify(label, None)

    def snapshot(self) -> Dict[str, WorkItem]:
        return dict(self._items)

    def __contains__(self, label: str) -> bool:
        return label in self._items

    def __len__(self) -> int:
        return len(self._items)

    def _notify(self, label: str, item: Optional[WorkItem]) -> None:
        for listener in list(self._listeners):
            try:
                listener(label, item)
            except Exception:
                # A broken subscriber must not break the state update
                logger.exception("[Store] Listener failed for %s", label)
