"""构建服务模块

- executor.py: 按计划串行执行构建步骤并安装产物
"""

from formulakit.services.build.executor import BuildExecutor

__all__ = ["BuildExecutor"]
