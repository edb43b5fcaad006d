"""冒烟测试模块

拆分说明:
- locator.py: 验证目标查找 (Found | NotFound)
- ports.py: 临时端口分配与保留
- process.py: 被测进程启动与强制终止
- readiness.py: 就绪等待策略 (poll / delay)
- probe.py: HTTP 探测
- harness.py: 状态机编排
"""

from formulakit.services.smoke.harness import SmokeHarness
from formulakit.services.smoke.locator import Found, NotFound, find_verification_target

__all__ = ["SmokeHarness", "Found", "NotFound", "find_verification_target"]
