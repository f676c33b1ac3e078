"""
文件功能：
    并发任务组：等待所有任务结束后再上报第一个错误。

    与“首错即取消”不同，已发出的兄弟任务不会被中断（中途打断容器创建会遗留孤儿资源），
    任务组只保证 wait() 在所有任务完成后返回或抛出最先出现的错误。

公开接口：
    - TaskGroup.go(fn, *args, **kwargs): 提交一个任务
    - TaskGroup.wait(): 等待全部任务，抛出第一个错误
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, List

from loguru import logger


class TaskGroup:
    def __init__(self, max_workers: int = 16, name: str = "testnet"):
        self._max_workers = max_workers
        self._name = name
        self._executor: ThreadPoolExecutor | None = None
        self._futures: List[Future] = []
        self._lock = threading.Lock()
        self._first_error: Exception | None = None

    def go(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix=self._name)

        def _task() -> Any:
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                with self._lock:
                    if self._first_error is None:
                        self._first_error = e
                logger.error(f"任务 {getattr(fn, '__name__', fn)} 失败: {e}")
                raise

        self._futures.append(self._executor.submit(_task))

    def wait(self) -> None:
        futures, self._futures = self._futures, []
        executor, self._executor = self._executor, None
        if futures:
            wait(futures)
        if executor is not None:
            executor.shutdown(wait=True)
        with self._lock:
            err, self._first_error = self._first_error, None
        if err is not None:
            raise err
