"""Background transforms delivered on the owning thread.

``TransformPipeline`` runs an operation (typically a stack blur) on a worker
thread and hands the outcome back to the thread that owns the pipeline
object through a Qt signal. Because the pipeline ``QObject`` lives on the
owning thread, a signal emitted from a worker is queued and its slot runs
there; the caller never blocks.

At delivery time two checks decide whether a result still applies. A
request that is not the latest one submitted for its destination is
dropped, so an older result finishing late never replaces a newer one.
The completion sink then compares the request's target token with the
token currently held by the destination; a destination that was rebound
while the work was in flight no longer matches, so the result is dropped.
There is no other form of cancellation: computations always run to
completion, and failures are never retried.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable, Hashable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from PySide6.QtCore import QObject, Signal

from bitmap_prep.errors import check_argument
from bitmap_prep.logger import get_logger

from .metrics import metrics
from .raster import RasterImage
from .stackblur import BLUR_RADIUS, stack_blur

_logger = get_logger("pipeline")

Operation = Callable[[RasterImage], "RasterImage | None"]


class RequestState(Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    COMPUTING = "computing"
    COMPLETED = "completed"
    FAILED = "failed"
    DELIVERED = "delivered"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class BlurOperation:
    radius: int = BLUR_RADIUS

    def __call__(self, image: RasterImage) -> RasterImage | None:
        return stack_blur(image, self.radius)


def identity(image: RasterImage) -> RasterImage:
    return image


# sink(request, image | None, error | None) -> True when the result was applied
CompletionSink = Callable[["TransformRequest", "RasterImage | None", "str | None"], bool]


@dataclass(eq=False)
class TransformRequest:
    """One invocation of the pipeline.

    ``image`` is released once the worker has picked it up so the request
    never keeps a source buffer alive after the next image exists.
    ``target``, when set, is the destination whose latest request wins.
    """

    image: RasterImage | None
    operation: Operation
    token: Hashable
    sink: CompletionSink
    source: Any = None
    request_id: int = 0
    state: RequestState = RequestState.IDLE
    error: str | None = field(default=None, repr=False)
    target: ImageTarget | None = field(default=None, repr=False)


class ImageTarget:
    """A destination bound to some content, e.g. a display slot or a cache key.

    ``token`` identifies the content the destination currently expects.
    Rebinding it to other content makes every in-flight result stale.
    """

    def __init__(
        self,
        token: Hashable = None,
        on_bind: Callable[[RasterImage, Any], None] | None = None,
        on_failure: Callable[[str], None] | None = None,
    ):
        self.token = token
        self.image: RasterImage | None = None
        self.source: Any = None
        self.last_error: str | None = None
        self._on_bind = on_bind
        self._on_failure = on_failure

    def rebind(self, token: Hashable) -> None:
        self.token = token
        self.image = None
        self.source = None
        self.last_error = None

    def bind(self, image: RasterImage, source: Any = None) -> None:
        self.image = image
        self.source = source
        if self._on_bind is not None:
            self._on_bind(image, source)

    def fail(self, error: str) -> None:
        self.last_error = error
        if self._on_failure is not None:
            self._on_failure(error)


class BindingSink:
    """Completion sink that binds results to an ``ImageTarget`` if still current."""

    def __init__(self, target: ImageTarget):
        self.target = target

    def __call__(self, request: TransformRequest, image: RasterImage | None, error: str | None) -> bool:
        if self.target.token != request.token:
            metrics.inc("pipeline.stale_dropped")
            _logger.debug(
                "delivery stale: id=%s token=%r live=%r (dropped)", request.request_id, request.token, self.target.token
            )
            return False
        if image is None:
            self.target.fail(error or "transform failed")
            return False
        self.target.bind(image, request.source)
        return True


class TransformPipeline(QObject):
    """Schedules transforms on a thread pool and delivers them on the owning thread."""

    delivered = Signal(object)  # TransformRequest, after its sink ran
    _finished = Signal(object, object, object)  # request, image|None, error|None

    def __init__(self, executor: Any = None, max_workers: int | None = None, parent: QObject | None = None):
        super().__init__(parent)
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bitmap_prep")
        self._lock = threading.Lock()
        self._next_id = 1
        self._in_flight = 0
        # target -> id of the last request submitted for it
        self._latest_id: weakref.WeakKeyDictionary[ImageTarget, int] = weakref.WeakKeyDictionary()
        self._finished.connect(self._deliver)
        _logger.debug("TransformPipeline init: max_workers=%s", max_workers)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    # ---- submission -----------------------------------------------
    def submit(self, request: TransformRequest) -> TransformRequest:
        check_argument(request.image is not None, "transform request has no source image")
        check_argument(request.state is RequestState.IDLE, f"request already {request.state.value}")
        with self._lock:
            request.request_id = self._next_id
            self._next_id += 1
            self._in_flight += 1
            if request.target is not None:
                self._latest_id[request.target] = request.request_id
            request.state = RequestState.SUBMITTED
        metrics.inc("pipeline.submitted")
        _logger.debug("submit: id=%s token=%r", request.request_id, request.token)
        try:
            self.executor.submit(self._compute, request)
        except Exception as e:
            _logger.exception("submit failed: id=%s", request.request_id)
            request.image = None
            self._finished.emit(request, None, str(e))
        return request

    def apply(
        self,
        image: RasterImage,
        operation: Operation,
        target: ImageTarget,
        source: Any = None,
        sink: CompletionSink | None = None,
    ) -> TransformRequest:
        """Transform ``image`` in the background and bind it to ``target`` if still current."""
        request = TransformRequest(image, operation, target.token, sink or BindingSink(target), source, target=target)
        return self.submit(request)

    def blur(
        self, image: RasterImage, target: ImageTarget, radius: int = BLUR_RADIUS, source: Any = None
    ) -> TransformRequest:
        return self.apply(image, BlurOperation(radius), target, source)

    # ---- worker side ----------------------------------------------
    def _compute(self, request: TransformRequest) -> None:
        with self._lock:
            request.state = RequestState.COMPUTING
        image, request.image = request.image, None
        error: str | None = None
        try:
            with metrics.timed("pipeline.compute"):
                result = request.operation(image)
        except Exception as e:
            _logger.exception("transform failed: id=%s", request.request_id)
            result, error = None, str(e) or type(e).__name__
        del image
        if result is None and error is None:
            error = "operation produced no image"
        self._finished.emit(request, result, error)

    # ---- owning thread --------------------------------------------
    def _is_superseded(self, request: TransformRequest) -> bool:
        if request.target is None:
            return False
        latest = self._latest_id.get(request.target)
        return latest is not None and latest != request.request_id

    def _deliver(self, request: TransformRequest, image: RasterImage | None, error: str | None) -> None:
        failed = error is not None
        with self._lock:
            self._in_flight -= 1
            superseded = self._is_superseded(request)
            request.state = RequestState.FAILED if failed else RequestState.COMPLETED
        request.error = error
        if failed:
            metrics.inc("pipeline.failed")
            _logger.warning("transform failed: id=%s token=%r error=%s", request.request_id, request.token, error)

        if superseded:
            metrics.inc("pipeline.stale_dropped")
            _logger.debug("delivery superseded: id=%s token=%r (dropped)", request.request_id, request.token)
            applied = False
        else:
            applied = bool(request.sink(request, image, error))

        if not failed:
            request.state = RequestState.DELIVERED if applied else RequestState.DISCARDED
            metrics.inc("pipeline.delivered" if applied else "pipeline.discarded")
        self.delivered.emit(request)

    def shutdown(self, wait: bool = False) -> None:
        if not self._owns_executor:
            return
        self.executor.shutdown(wait=wait, cancel_futures=True)
