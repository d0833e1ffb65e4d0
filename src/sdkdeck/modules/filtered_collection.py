"""Generic filtered, sorted collection with a selection cursor."""

import functools
from typing import Callable, Generic, Iterable, Optional, Tuple, TypeVar

from .observable import Event

T = TypeVar("T")

Predicate = Callable[[T], bool]
Comparator = Callable[[T, T], int]


def _include_all(item) -> bool:
    return True


class FilteredCollection(Generic[T]):
    """Holds a source set of items and derives the visible view from it.

    The visible view is always ``sort(filter(source))``.  It is recomputed
    synchronously whenever the source, the predicate or the comparator is
    replaced, and ``changed`` is emitted with the new view.  The sort is
    stable, so items the comparator considers equal keep source order.
    """

    def __init__(self, predicate: Optional[Predicate] = None,
                 comparator: Optional[Comparator] = None, name: str = "collection"):
        self.name = name
        self._source: Tuple[T, ...] = ()
        self._visible: Tuple[T, ...] = ()
        self._predicate: Predicate = predicate or _include_all
        self._comparator: Optional[Comparator] = comparator
        self.changed: Event[Tuple[T, ...]] = Event(f"{name}.changed")
        self.selection: SelectionCursor[T] = SelectionCursor(self)

    def replace_source(self, items: Iterable[T]) -> None:
        """Swap the backing set, keeping the selection when an equal item survives."""
        self._source = tuple(items)
        self._recompute()

    def set_filter(self, predicate: Optional[Predicate]) -> None:
        self._predicate = predicate or _include_all
        self._recompute()

    def set_sort(self, comparator: Optional[Comparator]) -> None:
        self._comparator = comparator
        self._recompute()

    def refilter(self) -> None:
        """Recompute with the current predicate, which may read mutable state."""
        self._recompute()

    def visible_items(self) -> Tuple[T, ...]:
        return self._visible

    def source_items(self) -> Tuple[T, ...]:
        return self._source

    def index_of(self, item: T) -> Optional[int]:
        try:
            return self._visible.index(item)
        except ValueError:
            return None

    def __len__(self) -> int:
        return len(self._visible)

    def __iter__(self):
        return iter(self._visible)

    def _recompute(self) -> None:
        included = [item for item in self._source if self._predicate(item)]
        if self._comparator is not None:
            included.sort(key=functools.cmp_to_key(self._comparator))
        self._visible = tuple(included)
        self.selection._revalidate()
        self.changed.emit(self._visible)


class SelectionCursor(Generic[T]):
    """Tracks the selected item within a collection's visible view.

    ``changed`` fires only when the selected identity changes.  When a refresh
    replaces the selected item with an equal one, the cursor silently points
    at the new instance.
    """

    def __init__(self, collection: FilteredCollection[T]):
        self._collection = collection
        self._selected: Optional[T] = None
        self.changed: Event[Optional[T]] = Event(f"{collection.name}.selection")

    @property
    def selected(self) -> Optional[T]:
        return self._selected

    @property
    def index(self) -> Optional[int]:
        if self._selected is None:
            return None
        return self._collection.index_of(self._selected)

    @property
    def is_empty(self) -> bool:
        return self._selected is None

    def set(self, item: Optional[T]) -> None:
        if item is None:
            self.clear()
            return
        index = self._collection.index_of(item)
        if index is None:
            raise ValueError(f"{item!r} is not visible in {self._collection.name}")
        self._assign(self._collection.visible_items()[index])

    def clear(self) -> None:
        self._assign(None)

    def select_first(self) -> None:
        visible = self._collection.visible_items()
        self._assign(visible[0] if visible else None)

    def move(self, offset: int) -> None:
        visible = self._collection.visible_items()
        if not visible or offset == 0:
            return
        index = self.index
        if index is None:
            index = 0 if offset > 0 else len(visible) - 1
        else:
            index = max(0, min(len(visible) - 1, index + offset))
        self._assign(visible[index])

    def _assign(self, item: Optional[T]) -> None:
        previous = self._selected
        self._selected = item
        if previous != item:
            self.changed.emit(item)

    def _revalidate(self) -> None:
        if self._selected is None:
            return
        index = self._collection.index_of(self._selected)
        if index is None:
            self._assign(None)
        else:
            # re-point at the (possibly new) equal instance without notifying
            self._selected = self._collection.visible_items()[index]
