"""
文件功能：
    基于 docker 命令行的容器运行时实现。

公开接口：
    - DockerCli: 实现 ContainerRuntime 协议

内部方法：
    - DockerCli._run: 执行一条 docker 命令，轮询上下文以支持取消
    - DockerCli._helper_run_args: 挂载卷的辅助容器参数（用于卷内文件读写）
"""

from __future__ import annotations

import posixpath
import subprocess
from typing import Dict, List, Tuple

from loguru import logger

from src.testnet.errors import ContainerRuntimeError, OperationCancelled
from .base import VOLUME_MOUNT_PATH, ContainerSpec
from .context import Context

_POLL_INTERVAL_S = 0.2


def _label_args(labels: Dict[str, str]) -> List[str]:
    args: List[str] = []
    for key, value in labels.items():
        args.extend(["--label", f"{key}={value}"])
    return args


class DockerCli:
    """通过 subprocess 调用 docker 二进制。"""

    def __init__(self, docker_bin: str = "docker", helper_image: str = "busybox:stable"):
        self.docker_bin = docker_bin
        self.helper_image = helper_image

    def _run(
        self,
        ctx: Context,
        args: List[str],
        input_bytes: bytes | None = None,
    ) -> subprocess.CompletedProcess:
        ctx.check()
        cmd = [self.docker_bin, *args]
        logger.debug(f"执行 docker 命令：{' '.join(cmd)}")
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE if input_bytes is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ContainerRuntimeError(f"无法执行 docker 命令: {e}") from e

        pending_input = input_bytes
        while True:
            remaining = ctx.remaining()
            # 截止时间临近时缩短轮询间隔
            poll = _POLL_INTERVAL_S if remaining is None else max(min(_POLL_INTERVAL_S, remaining), 0.01)
            try:
                stdout, stderr = proc.communicate(input=pending_input, timeout=poll)
                break
            except subprocess.TimeoutExpired:
                # 输入只能在第一次 communicate 时传入
                pending_input = None
                if ctx.cancelled:
                    proc.kill()
                    proc.communicate()
                    raise OperationCancelled(f"docker {args[0]} 已被取消")

        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            raise ContainerRuntimeError(
                f"docker {' '.join(args[:2])} 执行失败: {err}",
                returncode=proc.returncode,
                stderr=err,
            )
        return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)

    def _helper_run_args(self, volume: str) -> List[str]:
        return ["run", "--rm", "-i", "--user", "0:0", "-v", f"{volume}:{VOLUME_MOUNT_PATH}", self.helper_image]

    def pull_image(self, ctx: Context, repository: str, tag: str) -> None:
        self._run(ctx, ["pull", "--quiet", f"{repository}:{tag}"])

    def create_network(self, ctx: Context, name: str, labels: Dict[str, str]) -> str:
        try:
            existing = self._run(ctx, ["network", "inspect", "--format", "{{.Id}}", name])
            return existing.stdout.decode().strip()
        except ContainerRuntimeError:
            pass
        result = self._run(ctx, ["network", "create", *_label_args(labels), name])
        return result.stdout.decode().strip()

    def create_volume(self, ctx: Context, labels: Dict[str, str]) -> str:
        result = self._run(ctx, ["volume", "create", *_label_args(labels)])
        return result.stdout.decode().strip()

    def create_container(self, ctx: Context, spec: ContainerSpec) -> str:
        args = ["container", "create", "--name", spec.name]
        command = list(spec.command)
        if spec.hostname:
            args.extend(["--hostname", spec.hostname])
        if spec.user:
            args.extend(["--user", spec.user])
        if spec.network_id:
            args.extend(["--network", spec.network_id])
        if spec.entrypoint is not None:
            if spec.entrypoint:
                args.extend(["--entrypoint", spec.entrypoint[0]])
                command = [*spec.entrypoint[1:], *command]
            else:
                args.extend(["--entrypoint", ""])
        args.extend(_label_args(spec.labels))
        for env in spec.env:
            args.extend(["-e", env])
        for bind in spec.binds:
            args.extend(["-v", bind])
        for port in spec.exposed_ports:
            args.extend(["-p", port])
        args.append(spec.image)
        args.extend(command)
        result = self._run(ctx, args)
        return result.stdout.decode().strip()

    def start_container(self, ctx: Context, container_id: str) -> None:
        self._run(ctx, ["start", container_id])

    def wait_container(self, ctx: Context, container_id: str) -> int:
        result = self._run(ctx, ["wait", container_id])
        output = result.stdout.decode().strip()
        try:
            return int(output or "1")
        except ValueError as e:
            raise ContainerRuntimeError(f"无法解析 docker wait 的输出: {output!r}") from e

    def stop_container(self, ctx: Context, container_id: str, timeout_s: int) -> None:
        self._run(ctx, ["stop", "-t", str(timeout_s), container_id])

    def remove_container(self, ctx: Context, container_id: str) -> None:
        self._run(ctx, ["rm", "--force", container_id])

    def container_logs(self, ctx: Context, container_id: str, tail: int | None) -> Tuple[str, str]:
        tail_arg = str(tail) if tail is not None else "all"
        result = self._run(ctx, ["logs", "--tail", tail_arg, container_id])
        return (
            result.stdout.decode("utf-8", errors="replace"),
            result.stderr.decode("utf-8", errors="replace"),
        )

    def read_file(self, ctx: Context, volume: str, rel_path: str) -> bytes:
        path = posixpath.join(VOLUME_MOUNT_PATH, rel_path)
        result = self._run(ctx, [*self._helper_run_args(volume), "cat", path])
        return result.stdout

    def write_file(self, ctx: Context, volume: str, rel_path: str, data: bytes) -> None:
        path = posixpath.join(VOLUME_MOUNT_PATH, rel_path)
        script = 'mkdir -p "$(dirname "$1")" && cat > "$1"'
        self._run(ctx, [*self._helper_run_args(volume), "sh", "-c", script, "_", path], input_bytes=data)

    def host_port(self, ctx: Context, container_id: str, container_port: str) -> str:
        result = self._run(ctx, ["port", container_id, container_port])
        lines = [line.strip() for line in result.stdout.decode().splitlines() if line.strip()]
        return lines[0] if lines else ""

    def list_containers(self, ctx: Context, labels: Dict[str, str]) -> List[str]:
        args = ["ps", "--all", "--quiet"]
        for key, value in labels.items():
            args.extend(["--filter", f"label={key}={value}"])
        result = self._run(ctx, args)
        return [line.strip() for line in result.stdout.decode().splitlines() if line.strip()]
