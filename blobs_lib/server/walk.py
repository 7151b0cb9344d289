"""Prefix walk over a store directory.

The walk keeps an explicit stack of (path, key) pairs instead of recursing.
For every entry the part of its key that overlaps the prefix must be a
prefix of the requested prefix, so only branches on the way to, at, or
below the prefix are visited. In directory mode a directory whose key
already starts with the full prefix is reported and not descended into,
which yields one level of directories below the prefix.
"""
from __future__ import annotations
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple


@dataclass
class WalkEntry:
    key: str
    path: Path
    size: int = 0
    mtime: float = 0.0


@dataclass
class WalkResult:
    blobs: List[WalkEntry] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)


def in_path_of(key: str, prefix: str) -> bool:
    """True when `key` lies on the way to, at, or below `prefix`."""
    return prefix.startswith(key[:len(prefix)])


def walk_store(root: Path, prefix: str = "", directories: bool = False) -> WalkResult:
    """Collect blobs (and optionally directories) under `root` matching `prefix`.

    Entries come out in lexical key order. A missing root, or entries
    removed while walking, are skipped.
    """
    result = WalkResult()
    stack: List[Tuple[Path, str]] = [(root, "")]

    while stack:
        path, key = stack.pop()
        try:
            info = path.stat()
        except (FileNotFoundError, NotADirectoryError):
            continue

        if stat.S_ISDIR(info.st_mode):
            if key and directories and key.startswith(prefix):
                result.directories.append(key)
                continue
            try:
                names = sorted(os.listdir(path))
            except (FileNotFoundError, NotADirectoryError):
                continue
            for name in reversed(names):
                child_key = f"{key}/{name}" if key else name
                if in_path_of(child_key, prefix):
                    stack.append((path / name, child_key))
            continue

        if key and key.startswith(prefix):
            result.blobs.append(WalkEntry(key=key, path=path, size=info.st_size, mtime=info.st_mtime))

    return result
