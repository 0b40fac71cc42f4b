# recordshop/utils/batching.py
import threading
from concurrent.futures import Future
from typing import Callable, Generic, Hashable, List, Sequence, Tuple, TypeVar

from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BatchProcessor(Generic[K, V]):
    """
    Skleja wiele pojedynczych zapytan w jedno wywolanie batch_fn.

    add() zwraca Future. Batch leci gdy:
    - zbierze sie max_batch_size kluczy (od razu, w watku wywolujacym)
    - minie max_wait_time od pierwszego oczekujacego klucza (timer)
    - ktos wywola flush()

    batch_fn(keys) musi zwrocic liste wartosci w tej samej kolejnosci.
    Jesli batch_fn rzuci wyjatek, dostaje go kazdy Future z tego batcha.
    """

    def __init__(
        self,
        batch_fn: Callable[[List[K]], Sequence[V]],
        max_batch_size: int = 10,
        max_wait_time: float = 1.0,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        if max_batch_size <= 0:
            raise ValueError("max_batch_size must be positive")
        self.batch_fn = batch_fn
        self.max_batch_size = max_batch_size
        self.max_wait_time = max_wait_time
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: List[Tuple[K, Future]] = []
        self._timer = None

    def add(self, key: K) -> Future:
        future: Future = Future()
        ready = None

        with self._lock:
            self._pending.append((key, future))
            if len(self._pending) >= self.max_batch_size:
                ready = self._take_pending()
            elif self._timer is None:
                self._timer = self._timer_factory(self.max_wait_time, self.flush)
                self._timer.daemon = True
                self._timer.start()

        if ready:
            self._run(ready)
        return future

    def flush(self) -> None:
        with self._lock:
            ready = self._take_pending()
        if ready:
            self._run(ready)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _take_pending(self) -> List[Tuple[K, Future]]:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        ready, self._pending = self._pending, []
        return ready

    def _run(self, batch: List[Tuple[K, Future]]) -> None:
        keys = [key for key, _ in batch]
        # ten sam klucz w jednym batchu idzie raz
        unique = list(dict.fromkeys(keys))

        try:
            values = list(self.batch_fn(unique))
            if len(values) != len(unique):
                raise ValueError(f"batch_fn returned {len(values)} values for {len(unique)} keys")
        except Exception as exc:
            logger.error(f"Batch of {len(unique)} keys failed: {exc}")
            for _, future in batch:
                if future.set_running_or_notify_cancel():
                    future.set_exception(exc)
            return

        results = dict(zip(unique, values))
        for key, future in batch:
            # anulowany przez wywolujacego - pomijamy, reszta batcha dostaje wynik
            if future.set_running_or_notify_cancel():
                future.set_result(results[key])
