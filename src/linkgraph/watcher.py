"""File watcher: turns file system events into LinkIndex callbacks.

    python -m linkgraph.watcher [CONFIG_ROOT]

inotify (Linux, via inotify_simple):
    IN_CLOSE_WRITE                       -> on_save
    IN_MOVED_FROM + IN_MOVED_TO (cookie) -> on_rename
    IN_MOVED_TO without a partner        -> on_save
    IN_DELETE                            -> on_delete
    IN_MOVED_FROM unpaired after a read  -> on_delete

Polling (other platforms, or [watch] mode = "poll"): an mtime snapshot of
the corpus every poll_interval seconds; new or changed -> on_save,
vanished -> on_delete.

Both modes run a full_sync on startup and every resync_interval seconds
as a safety net for missed events.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from linkgraph.config import load_config
from linkgraph.index import LinkIndex

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from linkgraph.corpus import Corpus

logger = logging.getLogger("linkgraph.watcher")

_INOTIFY_TIMEOUT_MS = 1000


def _dispatch(fn: Callable[..., Any], *args: str) -> None:
    try:
        fn(*args)
        logger.info("%s: %s", fn.__name__, " -> ".join(args))
    except Exception:
        logger.exception("%s failed: %s", fn.__name__, " -> ".join(args))


def _resync(index: LinkIndex) -> None:
    stats = index.full_sync()
    if stats.fatal:
        logger.error("resync failed: %s", stats.fatal)


def resolve_mode(mode: str) -> str:
    if mode == "auto":
        return "inotify" if sys.platform.startswith("linux") else "poll"
    return mode


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


def snapshot(corpus: Corpus) -> dict[str, float]:
    """identity -> mtime for every document currently in the corpus."""
    seen: dict[str, float] = {}
    for identity in corpus.list_documents():
        try:
            seen[identity] = Path(identity).stat().st_mtime
        except OSError:
            continue
    return seen


def poll_once(index: LinkIndex, previous: dict[str, float]) -> dict[str, float]:
    """Dispatch saves and deletes since previous; returns the new snapshot."""
    current = snapshot(index.corpus)
    for identity, mtime in current.items():
        if previous.get(identity) != mtime:
            _dispatch(index.on_save, identity)
    for identity in sorted(previous.keys() - current.keys()):
        _dispatch(index.on_delete, identity)
    return current


def watch_poll(
    index: LinkIndex,
    *,
    interval: float = 1.0,
    resync_interval: float = 30.0,
    stop: threading.Event | None = None,
) -> None:
    """Polling fallback. Blocks until stop is set."""
    stop = stop or threading.Event()
    seen = snapshot(index.corpus)
    last_resync = time.monotonic()
    logger.info("polling %s interval=%.1fs", index.corpus.root, interval)

    while not stop.wait(interval):
        seen = poll_once(index, seen)
        if time.monotonic() - last_resync >= resync_interval:
            _resync(index)
            last_resync = time.monotonic()


# ---------------------------------------------------------------------------
# inotify
# ---------------------------------------------------------------------------


class EventRouter:
    """Turns batches of inotify events into LinkIndex callbacks.

    Events are (path, mask, cookie). A MOVED_FROM whose MOVED_TO has not
    arrived is held for one more batch, since the kernel may split a
    rename pair across two reads; after that it counts as a delete.
    """

    def __init__(self, index: LinkIndex, flags: Any, on_new_dir: Callable[[Path], None] | None = None) -> None:
        self.index = index
        self.flags = flags
        self.on_new_dir = on_new_dir
        # cookie -> source path of a rename whose destination is not seen yet
        self._moves: dict[int, str] = {}

    def feed(self, events: Iterable[tuple[str, int, int]]) -> None:
        flags = self.flags
        carried, self._moves = self._moves, {}
        for path, mask, cookie in events:
            if mask & flags.ISDIR:
                if mask & (flags.CREATE | flags.MOVED_TO) and self.on_new_dir is not None:
                    self.on_new_dir(Path(path))
                continue

            if mask & flags.MOVED_FROM:
                self._moves[cookie] = path
            elif mask & flags.MOVED_TO:
                old = self._moves.pop(cookie, None) or carried.pop(cookie, None)
                if old is not None:
                    _dispatch(self.index.on_rename, old, path)
                else:
                    _dispatch(self.index.on_save, path)
            elif mask & flags.CLOSE_WRITE:
                _dispatch(self.index.on_save, path)
            elif mask & flags.DELETE:
                _dispatch(self.index.on_delete, path)

        # moved somewhere we do not watch
        for old in carried.values():
            _dispatch(self.index.on_delete, old)


def watch_inotify(
    index: LinkIndex,
    *,
    resync_interval: float = 30.0,
    stop: threading.Event | None = None,
) -> None:
    """Watch using inotify_simple (Linux). Blocks until stop is set."""
    import inotify_simple  # type: ignore[import-untyped]

    stop = stop or threading.Event()
    inotify = inotify_simple.INotify()
    flags = inotify_simple.flags
    mask = (
        flags.CLOSE_WRITE | flags.MOVED_FROM | flags.MOVED_TO
        | flags.CREATE | flags.DELETE
    )

    # watch descriptor -> directory
    watched: dict[int, Path] = {}

    def add_tree(top: Path) -> None:
        for directory in (top, *(p for p in top.rglob("*") if p.is_dir())):
            rel = directory.relative_to(index.corpus.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            try:
                watched[inotify.add_watch(str(directory), mask)] = directory
            except OSError:
                logger.warning("cannot watch %s", directory)

    router = EventRouter(index, flags, on_new_dir=add_tree)
    try:
        add_tree(index.corpus.root)
        logger.info("inotify watching %s (%d dirs)", index.corpus.root, len(watched))

        last_resync = time.monotonic()
        while not stop.is_set():
            batch = [
                (str(watched[event.wd] / event.name), event.mask, event.cookie)
                for event in inotify.read(timeout=_INOTIFY_TIMEOUT_MS)
                if event.wd in watched and event.name
            ]
            router.feed(batch)

            if time.monotonic() - last_resync >= resync_interval:
                _resync(index)
                last_resync = time.monotonic()
    finally:
        inotify.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run(index: LinkIndex, stop: threading.Event | None = None) -> None:
    """Initial full sync, then watch until stop is set or the process is interrupted."""
    watch = index.cfg.watch
    _resync(index)
    mode = resolve_mode(watch.mode)
    if mode == "inotify":
        watch_inotify(index, resync_interval=watch.resync_interval, stop=stop)
    else:
        watch_poll(index, interval=watch.poll_interval, resync_interval=watch.resync_interval, stop=stop)


def run_from_config(config_root: Path | None = None) -> None:
    cfg = load_config(config_root)
    logging.basicConfig(level=cfg.log.level, format="%(asctime)s %(name)s %(message)s")
    with LinkIndex.open(cfg) as index:
        try:
            run(index)
        except KeyboardInterrupt:
            logger.info("watcher stopped")


if __name__ == "__main__":
    root = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    run_from_config(root)
