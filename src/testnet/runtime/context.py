"""
可取消的调用上下文。

每一个阻塞调用（拉取镜像、创建卷、容器生命周期、卷文件读写）都接收一个 Context；
取消后正在执行的调用会尽快返回 OperationCancelled。
"""

from __future__ import annotations

import threading
import time

from src.testnet.errors import OperationCancelled


class Context:
    """取消信号 + 可选的截止时间。"""

    def __init__(self, timeout_s: float | None = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout_s if timeout_s is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> float | None:
        """距离截止时间的剩余秒数；未设置截止时间时返回 None。"""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        if self.cancelled:
            raise OperationCancelled("操作已被取消")


def background() -> Context:
    """不会被取消的根上下文。"""
    return Context()
