"""
文件功能：
    测试网编排过程中使用的异常类型。

公开接口：
    - TestnetError: 所有异常的基类
    - DerivationError: 节点身份密钥派生失败（致命，中止 initialize）
    - VolumeError: 存储卷创建/属主设置失败
    - DocumentPathError: 创世文档路径寻址失败
    - ExportError: 平行链创世头/验证代码导出失败
    - ContainerLifecycleError: 容器创建/启动/停止失败
    - JobExecutionError: 一次性任务（中继器命令、build-spec）非零退出或调用失败
    - ParseError: 通道查询输出中的 JSON 行无法解析（非致命）
    - ContainerRuntimeError: 容器运行时（docker CLI）调用失败
    - OperationCancelled: 调用方取消了上下文
"""

from __future__ import annotations


class TestnetError(RuntimeError):
    """测试网编排异常基类。"""

    __test__ = False


class DerivationError(TestnetError):
    pass


class VolumeError(TestnetError):
    pass


class DocumentPathError(TestnetError):
    """创世文档寻址失败，segment 为出错的路径段。"""

    def __init__(self, message: str, segment: object = None):
        super().__init__(message)
        self.segment = segment


class ExportError(TestnetError):
    pass


class ContainerLifecycleError(TestnetError):
    pass


class ContainerRuntimeError(TestnetError):
    """docker CLI 返回非零退出码。"""

    def __init__(self, message: str, returncode: int = 1, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class OperationCancelled(TestnetError):
    pass


class JobExecutionError(TestnetError):
    """一次性任务失败，保留原始 stdout/stderr 以便排查。"""

    def __init__(self, message: str, exit_code: int = 1, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class ParseError(TestnetError, ValueError):
    pass
