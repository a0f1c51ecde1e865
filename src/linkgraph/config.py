"""LGConfig: per-corpus config for the link index.

Default layout (all relative to the directory holding linkgraph.toml):

    linkgraph.toml        # config (optional; defaults apply without it)
    .env                  # optional: LINKGRAPH_CORPUS_DIR, LINKGRAPH_DB_PATH
    .linkgraph/
        graph.db          # SQLite index, fully reconstructable (lg sync --rebuild)
        .gitignore        # auto-written: ignores everything in the index dir

linkgraph.toml example:

    [linkgraph]
    name = "notes"
    corpus_dir = "."
    index_dir = ".linkgraph"
    extensions = [".org", ".txt"]
    exclude = ["archive/**"]

    [refs]
    on_duplicate = "overwrite"   # or "reject"

    [links]
    prune_dangling = false

    [watch]
    mode = "auto"                # auto | inotify | poll
    poll_interval = 1.0
    resync_interval = 30.0

    [log]
    level = "INFO"

Environment (process or .env) overrides the corpus and store locations:
LINKGRAPH_CORPUS_DIR, LINKGRAPH_DB_PATH.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from linkgraph.corpus import DEFAULT_EXTENSIONS

_CONFIG_FILENAME = "linkgraph.toml"
_DEFAULT_INDEX_DIR = ".linkgraph"
_DB_FILENAME = "graph.db"
_GITIGNORE_CONTENT = "*\n"

_WATCH_MODES = ("auto", "inotify", "poll")


@dataclass
class RefsConfig:
    on_duplicate: str = "overwrite"    # overwrite | reject


@dataclass
class LinksConfig:
    prune_dangling: bool = False       # delete links pointing at a deleted document


@dataclass
class WatchConfig:
    mode: str = "auto"
    poll_interval: float = 1.0         # seconds between mtime scans in poll mode
    resync_interval: float = 30.0      # seconds between safety-net full syncs


@dataclass
class LogConfig:
    level: str = "INFO"


@dataclass
class LGConfig:
    """Resolved configuration for one corpus."""

    root: Path                         # directory that contains linkgraph.toml
    name: str = ""
    corpus_dir: Path = field(default_factory=Path)
    index_dir: Path = field(default_factory=Path)
    db_file: Path | None = None        # explicit store location; default index_dir/graph.db
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    exclude: list[str] = field(default_factory=list)
    refs: RefsConfig = field(default_factory=RefsConfig)
    links: LinksConfig = field(default_factory=LinksConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def db_path(self) -> Path:
        return self.db_file or self.index_dir / _DB_FILENAME

    def ensure_dirs(self) -> None:
        """Create the store directory and keep the index out of git."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if self.db_file is None:
            gitignore = self.index_dir / ".gitignore"
            if not gitignore.exists():
                gitignore.write_text(_GITIGNORE_CONTENT)


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def _resolve(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def load_config(root: Path | str | None = None) -> LGConfig:
    """Load linkgraph.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root).resolve() if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    # process environment wins over .env
    env = {**_load_env(root_path), **os.environ}

    lg_section = raw.get("linkgraph", {})
    refs_section = raw.get("refs", {})
    links_section = raw.get("links", {})
    watch_section = raw.get("watch", {})
    log_section = raw.get("log", {})

    corpus_dir = env.get("LINKGRAPH_CORPUS_DIR") or lg_section.get("corpus_dir", ".")
    index_dir = lg_section.get("index_dir", _DEFAULT_INDEX_DIR)
    db_file = env.get("LINKGRAPH_DB_PATH")

    on_duplicate = str(refs_section.get("on_duplicate", "overwrite"))
    if on_duplicate not in ("overwrite", "reject"):
        msg = f"{config_path}: [refs] on_duplicate must be 'overwrite' or 'reject', got {on_duplicate!r}"
        raise ValueError(msg)
    mode = str(watch_section.get("mode", "auto"))
    if mode not in _WATCH_MODES:
        msg = f"{config_path}: [watch] mode must be one of {', '.join(_WATCH_MODES)}, got {mode!r}"
        raise ValueError(msg)

    return LGConfig(
        root=root_path,
        name=lg_section.get("name", root_path.name),
        corpus_dir=_resolve(root_path, corpus_dir).resolve(),
        index_dir=_resolve(root_path, index_dir),
        db_file=_resolve(root_path, db_file) if db_file else None,
        extensions=list(lg_section.get("extensions", DEFAULT_EXTENSIONS)),
        exclude=list(lg_section.get("exclude", [])),
        refs=RefsConfig(on_duplicate=on_duplicate),
        links=LinksConfig(prune_dangling=bool(links_section.get("prune_dangling", False))),
        watch=WatchConfig(
            mode=mode,
            poll_interval=float(watch_section.get("poll_interval", 1.0)),
            resync_interval=float(watch_section.get("resync_interval", 30.0)),
        ),
        log=LogConfig(level=str(log_section.get("level", "INFO")).upper()),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for linkgraph.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default linkgraph.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"linkgraph.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[linkgraph]
name = "{project_name}"
# corpus_dir = "."              # or set LINKGRAPH_CORPUS_DIR
# index_dir = ".linkgraph"      # graph.db lives here; or set LINKGRAPH_DB_PATH
# extensions = [".org", ".txt"]
# exclude = []                  # fnmatch patterns relative to corpus_dir

# [refs]
# on_duplicate = "overwrite"    # "reject" refuses a ref already bound elsewhere

# [links]
# prune_dangling = false        # true: deleting a document drops links pointing at it

# [watch]
# mode = "auto"                 # auto | inotify | poll
# poll_interval = 1.0
# resync_interval = 30.0

# [log]
# level = "INFO"
"""
    config_path.write_text(content)
    return config_path
