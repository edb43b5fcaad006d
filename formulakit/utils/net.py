"""网络工具 — URL 校验与端口连通性检查"""

from __future__ import annotations

import socket
from urllib.parse import urlparse

from formulakit.core.exceptions import ValidationError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(
    url: str, *, context: str = "",
    allowed: frozenset[str] = _ALLOWED_SCHEMES,
) -> None:
    """校验 URL 协议在白名单内，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in allowed:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 {'/'.join(sorted(allowed))}: {url}"
        )


def can_connect(host: str, port: int, timeout: float = 0.2) -> bool:
    """尝试一次 TCP 连接，成功即关闭"""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False
