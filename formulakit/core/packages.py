"""依赖包本地查找

职责:
- 将依赖包名解析为本地安装根目录（opt 前缀），不触发下载
- 配置中显式声明的安装路径优先，其次 <prefix_root>/opt/<name>
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class PackageLookup(Protocol):
    """依赖包查找协议 — 包名 → 安装前缀"""

    def opt_prefix(self, name: str) -> Path | None:
        """返回已安装包的绝对路径，未安装返回 None"""
        ...


class PrefixLookup:
    """基于前缀目录的依赖包查找"""

    def __init__(self, prefix_root: str | Path, packages: dict[str, str] | None = None) -> None:
        self.prefix_root = Path(prefix_root)
        self.packages = dict(packages or {})

    def opt_prefix(self, name: str) -> Path | None:
        explicit = self.packages.get(name)
        if explicit:
            path = Path(explicit)
            if path.exists():
                return path.resolve()
            logger.warning("配置的安装路径不存在: %s -> %s", name, path)
            return None
        path = self.opt_link(name)
        if path.exists():
            logger.debug("本地命中: %s -> %s", name, path)
            return path.resolve()
        return None

    def opt_link(self, name: str) -> Path:
        """opt 链接位置（不论是否存在）"""
        return self.prefix_root / "opt" / name

    def link(self, name: str, keg: Path) -> Path:
        """将 opt/<name> 指向新安装的目录，已有链接则替换"""
        link = self.opt_link(name)
        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(keg.resolve(), target_is_directory=True)
        logger.info("已链接: %s -> %s", link, keg)
        return link
