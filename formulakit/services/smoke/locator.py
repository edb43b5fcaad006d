"""验证目标查找

在安装目录的 share/<name> 下按模式查找可执行文件。模式支持 glob 与
花括号展开，如 "examples/cpp{11,03}/http/server/http_server"。
结果为 Found | NotFound，调用方必须显式处理未找到的情况。
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


@dataclass(frozen=True)
class Found:
    path: Path
    candidates: tuple[Path, ...] = ()


@dataclass(frozen=True)
class NotFound:
    patterns: tuple[str, ...]
    search_dir: Path


LookupResult = Union[Found, NotFound]


def expand_braces(pattern: str) -> list[str]:
    """展开花括号，按书写顺序返回，如 a{1,2}b → [a1b, a2b]"""
    m = _BRACE_RE.search(pattern)
    if m is None:
        return [pattern]
    head, tail = pattern[:m.start()], pattern[m.end():]
    results: list[str] = []
    for option in m.group(1).split(","):
        results.extend(expand_braces(f"{head}{option}{tail}"))
    return results


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def find_verification_target(share_dir: Path, patterns: list[str] | tuple[str, ...]) -> LookupResult:
    """按模式顺序查找，首个模式命中的第一个可执行文件即为目标"""
    matches: list[Path] = []
    for pattern in patterns:
        for expanded in expand_braces(pattern):
            if not expanded:
                continue
            for p in sorted(share_dir.glob(expanded)):
                if _is_executable(p) and p not in matches:
                    matches.append(p)
    if not matches:
        return NotFound(patterns=tuple(patterns), search_dir=share_dir)
    return Found(path=matches[0], candidates=tuple(matches))
