"""YAML 文档读写 — 配方、配置与安装回执

读取要求顶层为映射；格式错误直接报 ValidationError 而不是静默回退，
避免一个写坏的配方被当作"空配方"继续往下走。写入先落临时文件再 rename。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from formulakit.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

MAX_DOCUMENT_SIZE = 1024 * 1024


def write_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
    except OSError:
        Path(tmp).unlink(missing_ok=True)
        raise


def load_document(path: str | Path, *, kind: str = "YAML") -> dict[str, Any]:
    """读取 YAML 映射文档，文件不存在或为空时返回 {}

    Raises:
        ValidationError: 文件过大、语法错误或顶层不是映射
    """
    p = Path(path)
    if not p.is_file():
        return {}

    size = p.stat().st_size
    if size > MAX_DOCUMENT_SIZE:
        raise ValidationError(f"{kind} 文件过大: {p} ({size} 字节)")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.error("%s 解析失败: %s", kind, p)
        raise ValidationError(f"{kind} 解析失败: {p}", details=[str(e)]) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{kind} 顶层必须是映射: {p} (实际: {type(data).__name__})")
    return data


def dump_document(path: str | Path, data: dict[str, Any], *, header: str = "") -> None:
    """写入 YAML 映射文档，保持键顺序"""
    content = yaml.safe_dump(
        data, default_flow_style=False, allow_unicode=True, sort_keys=False,
    )
    if header:
        content = f"# {header}\n{content}"
    write_atomic(Path(path), content)
