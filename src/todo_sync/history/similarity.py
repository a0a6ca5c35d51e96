# src/todo_sync/history/similarity.py

from __future__ import annotations

import re
from pathlib import PurePosixPath

_PRIORITY_PREFIX_RE = re.compile(r"^p[1-5]--\d{4}-\d{2}-\d{2}--")
_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-")


def _clean(name: str) -> str:
    stem = PurePosixPath(name).stem.lower()
    stem = _PRIORITY_PREFIX_RE.sub("", stem)
    return _DATE_PREFIX_RE.sub("", stem)


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def filename_similarity(a: str, b: str) -> float:
    """
    Score in [0, 1] for two filenames (directories are ignored).

    1.0  same name once extension and date/priority prefixes are removed
    0.8  one name contains the other and covers >= 30% of it
    0.7  common prefix of >= 3 chars covering >= 20% of the longer name
    else normalized Levenshtein similarity
    """
    if not a or not b:
        return 0.0
    x, y = _clean(PurePosixPath(a).name), _clean(PurePosixPath(b).name)
    if not x or not y:
        return 0.0
    if x == y:
        return 1.0

    longer, shorter = (x, y) if len(x) > len(y) else (y, x)
    if shorter in longer and len(shorter) / len(longer) >= 0.3:
        return 0.8

    prefix = 0
    for cx, cy in zip(x, y):
        if cx != cy:
            break
        prefix += 1
    if prefix >= 3 and prefix / len(longer) >= 0.2:
        return 0.7

    return 1.0 - levenshtein(x, y) / len(longer)
