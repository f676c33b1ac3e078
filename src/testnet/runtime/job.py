"""
文件功能：
    一次性任务容器：创建 → 启动 → 等待退出 → 收集日志 → 删除。
    无论成功与否，任务容器都会被删除。
    取消不会被包装为失败结果，OperationCancelled 原样抛出。

公开接口：
    - JobResult: 任务结果（exit_code / stdout / stderr / error）
    - run_job(runtime, ctx, spec, log_tail): 执行一次性任务
    - handle_job_error(result, action): 将失败的结果转换为 JobExecutionError
"""

from __future__ import annotations

from loguru import logger
from pydantic import BaseModel, Field

from src.testnet.errors import JobExecutionError, OperationCancelled, TestnetError
from .base import ContainerRuntime, ContainerSpec
from .context import Context, background


class JobResult(BaseModel):
    """一次性任务的执行结果，仅在产生它的调用内有效。"""

    exit_code: int = Field(description="容器退出码")
    stdout: str = Field(default="", description="标准输出")
    stderr: str = Field(default="", description="标准错误")
    error: str | None = Field(default=None, description="调用运行时失败时的错误信息")

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_code == 0


def run_job(
    runtime: ContainerRuntime,
    ctx: Context,
    spec: ContainerSpec,
    log_tail: int | None = None,
) -> JobResult:
    logger.info(f"执行命令：{' '.join(spec.command)}（容器 {spec.name}）")
    try:
        container_id = runtime.create_container(ctx, spec)
    except OperationCancelled:
        raise
    except TestnetError as e:
        return JobResult(exit_code=1, error=f"创建任务容器失败: {e}")

    result: JobResult
    try:
        runtime.start_container(ctx, container_id)
        exit_code = runtime.wait_container(ctx, container_id)
        stdout, stderr = runtime.container_logs(ctx, container_id, log_tail)
        result = JobResult(exit_code=exit_code, stdout=stdout, stderr=stderr)
    except OperationCancelled:
        raise
    except TestnetError as e:
        result = JobResult(exit_code=1, error=str(e))
    finally:
        # 上下文可能已被取消，删除容器使用独立的根上下文
        try:
            runtime.remove_container(background(), container_id)
        except TestnetError as e:
            logger.error(f"删除任务容器 {spec.name} 失败: {e}")

    logger.debug(f"容器 {spec.name} 退出码 {result.exit_code}\nstdout:\n{result.stdout}\nstderr:\n{result.stderr}")
    return result


def handle_job_error(result: JobResult, action: str) -> None:
    """非零退出或运行时错误统一包装为 JobExecutionError。"""
    if result.ok:
        return
    reason = result.error or f"退出码 {result.exit_code}"
    raise JobExecutionError(
        f"{action} 失败: {reason}\nstdout:\n{result.stdout}\nstderr:\n{result.stderr}",
        exit_code=result.exit_code,
        stdout=result.stdout,
        stderr=result.stderr,
    )
