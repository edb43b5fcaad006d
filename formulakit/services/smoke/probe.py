"""HTTP 探测

对被测进程发起一次 GET 请求。HTTP 错误状态（如 404）同样读取响应体返回，
由调用方断言内容；连接失败、超时等传输错误返回 ok=False。
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request

from formulakit.core.models import ProbeResult
from formulakit.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)

# 响应体最大读取字节数
MAX_BODY = 64 * 1024


def http_probe(url: str, timeout: float = 10.0) -> ProbeResult:
    validate_url_scheme(url, context="probe")
    logger.info("探测: %s", url)
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:  # nosec B310
            body = resp.read(MAX_BODY).decode("utf-8", errors="replace")
            return ProbeResult(ok=True, status=resp.status, body=body)
    except urllib.error.HTTPError as e:
        body = e.read(MAX_BODY).decode("utf-8", errors="replace") if e.fp else ""
        e.close()
        return ProbeResult(ok=True, status=e.code, body=body)
    except (urllib.error.URLError, OSError) as e:
        logger.warning("探测失败 %s: %s", url, e)
        return ProbeResult(ok=False, error=str(e))
