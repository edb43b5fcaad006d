"""统一异常体系

所有业务异常继承 FormulaKitError，每个异常携带 code 与诊断上下文，
调用方无需开启详细日志重跑即可定位问题（失败步骤 / 退出码 / 缺失模式）。
CLI 层据此输出一行友好提示。
"""

from __future__ import annotations


class FormulaKitError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(FormulaKitError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(FormulaKitError):
    """配方声明校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class FormulaNotFoundError(FormulaKitError):
    """指定的配方或安装产物不存在"""

    code = "FORMULA_NOT_FOUND"


# =========================================================================
# 配方解析阶段（任何构建步骤执行前抛出）
# =========================================================================


class IntegrityError(FormulaKitError):
    """源码包校验和不匹配"""

    code = "INTEGRITY_ERROR"

    def __init__(self, message: str, *, expected: str = "", actual: str = "") -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class MissingBuildDependency(FormulaKitError):
    """head 变体所需的构建期依赖不存在"""

    code = "MISSING_BUILD_DEPENDENCY"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"缺少构建期依赖: {', '.join(missing)}")
        self.missing = list(missing)


class UnresolvedDependency(FormulaKitError):
    """配置参数引用的依赖包未安装"""

    code = "UNRESOLVED_DEPENDENCY"

    def __init__(self, package: str, flag: str = "") -> None:
        label = f" (参数 --{flag})" if flag else ""
        super().__init__(f"依赖包未安装，无法解析安装路径: {package}{label}")
        self.package = package
        self.flag = flag


# =========================================================================
# 构建执行阶段
# =========================================================================


class BuildStepFailed(FormulaKitError):
    """构建步骤返回非零退出码，后续步骤已中止"""

    code = "BUILD_STEP_FAILED"

    def __init__(self, step: str, exit_code: int, output: str = "") -> None:
        msg = f"构建步骤失败: {step} (rc={exit_code})"
        if output:
            msg += f": {output[-500:]}"
        super().__init__(msg)
        self.step = step
        self.exit_code = exit_code
        self.output = output


# =========================================================================
# 冒烟测试阶段
# =========================================================================


class VerificationTargetMissing(FormulaKitError):
    """安装目录中找不到验证用可执行文件（安装缺陷，不重试）"""

    code = "VERIFICATION_TARGET_MISSING"

    def __init__(self, patterns: list[str], share_dir: str = "") -> None:
        where = f" (目录 {share_dir})" if share_dir else ""
        super().__init__(f"未找到验证可执行文件{where}: {', '.join(patterns)}")
        self.patterns = list(patterns)
        self.share_dir = share_dir


class ReadinessTimeout(FormulaKitError):
    """被测进程在时限内未就绪"""

    code = "READINESS_TIMEOUT"

    def __init__(self, port: int, timeout: float, reason: str = "") -> None:
        msg = f"进程未在 {timeout:.1f}s 内就绪 (port={port})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.port = port
        self.timeout = timeout


class UnexpectedProbeResponse(FormulaKitError):
    """探测响应不含预期内容，安装产物功能异常"""

    code = "UNEXPECTED_PROBE_RESPONSE"

    def __init__(self, expected: str, body: str, error: str = "") -> None:
        detail = error or body[:200]
        super().__init__(f"探测响应不含 '{expected}': {detail}")
        self.expected = expected
        self.body = body
        self.error = error
