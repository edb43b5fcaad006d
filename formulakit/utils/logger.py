"""formulakit 日志配置

构建步骤、状态机迁移等通过 extra={"formula": ..., "step": ...} 附带上下文。
文本格式把上下文追加在行尾，JSON 格式放在 "context" 字段中，便于 CI 检索
某个配方某一步骤的全部日志。

环境变量（CLI 入口读取）:
  FORMULAKIT_LOG_LEVEL  日志级别，默认 INFO
  FORMULAKIT_LOG_JSON   为 1 时输出 JSON
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("formula", "variant", "step", "state", "port", "pid")

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


def _context(record: logging.LogRecord) -> dict[str, object]:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class ContextFormatter(logging.Formatter):
    """文本格式，行尾追加 [formula=asio step=configure]"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        ctx = _context(record)
        if not ctx:
            return line
        suffix = " ".join(f"{k}={v}" for k, v in ctx.items())
        first, sep, rest = line.partition("\n")
        return f"{first} [{suffix}]{sep}{rest}"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "formulakit.services.smoke.harness",
            "message": "...",
            "context": {"formula": "asio", "state": "probed"},  (有上下文时)
            "exception": "traceback..."                         (有异常时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        ctx = _context(record)
        if ctx:
            entry["context"] = ctx
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器输出到 stderr，重复调用会替换已有 handler"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else ContextFormatter(TEXT_FORMAT))
    root.addHandler(handler)
