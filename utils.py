import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def has_files(path: Path) -> bool:
    """True when ``path`` is a directory holding at least one regular file
    anywhere below it. Symlinks never count, even when they point at a file.
    Filesystem errors count as "no files"."""
    try:
        if not path.is_dir():
            return False
        for root, _dirs, files in os.walk(path, onerror=_log_walk_error):
            for name in files:
                candidate = os.path.join(root, name)
                if os.path.isfile(candidate) and not os.path.islink(candidate):
                    return True
    except OSError as exc:
        logging.debug("Cannot inspect %s: %s", path, exc)
    return False


def _log_walk_error(exc: OSError) -> None:
    logging.debug("Skipping unreadable path %s: %s", exc.filename, exc)


def remove_tree(path: Path) -> bool:
    if not path.exists() and not path.is_symlink():
        return False
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    return True


def dedupe_keep_order(values: Iterable[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def tail(text: str, limit: int) -> str:
    if limit <= 0 or not text:
        return ""
    return text[-limit:]
