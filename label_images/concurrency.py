from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar
import logging

from label_images.settings import settings

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

@dataclass
class ItemResult(Generic[T, R]):
    """Outcome of one item of a fan-out: either a value or the error it raised."""
    item: T
    value: Optional[R] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

def fan_out(
    fn: Callable[[T], R],
    items: Iterable[T],
    max_workers: Optional[int] = None,
) -> List[ItemResult]:
    """
        Runs fn over items on a thread pool and joins on completion.

        Results come back in input order. An exception raised for one item is
        captured in its ItemResult and never cancels the others.
    """
    items = list(items)
    if not items:
        return []

    workers = min(max_workers or settings.fanout_max_workers, len(items))
    with ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(fn, item) for item in items]
        results: List[ItemResult] = []
        for item, fut in zip(items, futures):
            try:
                results.append(ItemResult(item=item, value=fut.result()))
            except Exception as e:
                log.warning("Fan-out item %r failed: %s", item, e)
                results.append(ItemResult(item=item, error=e))
    return results

def failed(results: List[ItemResult]) -> List[ItemResult]:
    return [r for r in results if not r.ok]

def values(results: List[ItemResult]) -> List[Any]:
    return [r.value for r in results if r.ok]
