"""formulakit - 声明式源码包配方构建与安装后冒烟测试"""

__version__ = "0.1.0"
