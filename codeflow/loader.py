"""Asynchronous file loading into the graph."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from . import config
from .models import Node, Position
from .store import GraphStore

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], None]


class FileLoader(Protocol):
    def load(self, file_id: str) -> "Future[str]":
        ...


class LocalFileLoader:
    """Read files below *root* on a small thread pool."""

    def __init__(self, root: Path, max_workers: int = config.LOADER_WORKERS) -> None:
        self.root = root.resolve()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="codeflow-load")

    def load(self, file_id: str) -> "Future[str]":
        return self._pool.submit(self._read, file_id)

    def _read(self, file_id: str) -> str:
        path = (self.root / file_id).resolve()
        if self.root not in path.parents and path != self.root:
            raise PermissionError(f"{file_id} is outside {self.root}")
        return path.read_text(encoding="utf-8", errors="ignore")

    def list_files(self) -> List[str]:
        """Relative paths of every file the extractor understands."""
        return sorted(
            str(p.relative_to(self.root))
            for p in self.root.rglob("*")
            if p.is_file() and p.suffix in config.LANGUAGE_MAP
            and not any(
                part.startswith(".") or part == "node_modules"
                for part in p.relative_to(self.root).parts
            )
        )

    def close(self) -> None:
        self._pool.shutdown(wait=True)


def open_file(
    store: GraphStore,
    loader: FileLoader,
    file_id: str,
    position: Optional[Position] = None,
    origin_node_id: Optional[str] = None,
    dispatch: Optional[Dispatch] = None,
) -> "Future[Optional[Node]]":
    """Start loading *file_id*; the result becomes one ``load_file`` call.

    *dispatch* schedules the completion on the thread that owns *store*
    (for example an event loop's ``call_soon_threadsafe``); without one the
    completion runs on the loader's thread, where the store lock keeps it from
    interleaving with other operations.
    """
    outcome: "Future[Optional[Node]]" = Future()

    def _apply(text: str) -> None:
        try:
            outcome.set_result(store.load_file(
                file_id, text, position=position, origin_node_id=origin_node_id,
            ))
        except Exception as exc:
            logger.warning("Could not add %s to the graph: %s", file_id, exc)
            outcome.set_exception(exc)

    def _done(pending: "Future[str]") -> None:
        if pending.cancelled():
            outcome.cancel()
            return
        exc = pending.exception()
        if exc is not None:
            logger.warning("Failed to load %s: %s", file_id, exc)
            outcome.set_exception(exc)
            return
        text = pending.result()
        if dispatch is None:
            _apply(text)
        else:
            dispatch(lambda: _apply(text))

    loader.load(file_id).add_done_callback(_done)
    return outcome
