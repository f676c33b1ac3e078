"""
文件功能：
    容器运行时的通用客户端接口定义。编排器与中继器驱动只依赖此接口，
    具体实现见 docker_cli.DockerCli（测试中使用内存实现）。

公开接口：
    - CLEANUP_LABEL / NODE_OWNER_LABEL: 卷与容器上的标签键
    - VOLUME_MOUNT_PATH: 辅助容器中卷的挂载点
    - ContainerSpec: 创建容器所需的全部参数
    - ContainerRuntime: 运行时协议
"""

from __future__ import annotations

from typing import Dict, List, Protocol, Tuple

from pydantic import BaseModel, Field

from .context import Context

CLEANUP_LABEL = "ibc-test"
NODE_OWNER_LABEL = "ibc-test-node"
VOLUME_MOUNT_PATH = "/mnt/dockervolume"


class ContainerSpec(BaseModel):
    """创建容器的参数。"""

    name: str = Field(description="容器名")
    image: str = Field(description="镜像引用 repository:tag")
    command: List[str] = Field(default_factory=list, description="容器命令")
    entrypoint: List[str] | None = Field(default=None, description="覆盖镜像入口点；空列表表示清空")
    env: List[str] = Field(default_factory=list, description="KEY=VALUE 形式的环境变量")
    binds: List[str] = Field(default_factory=list, description="卷或目录绑定 source:target")
    network_id: str | None = Field(default=None, description="加入的 docker 网络")
    user: str | None = Field(default=None, description="容器进程的 uid:gid")
    hostname: str | None = Field(default=None, description="容器主机名")
    labels: Dict[str, str] = Field(default_factory=dict, description="容器标签")
    exposed_ports: List[str] = Field(default_factory=list, description="需要映射到宿主机的端口，如 27452/tcp")


class ContainerRuntime(Protocol):
    """容器运行时边界。所有方法均为阻塞调用，并接收可取消的 Context。"""

    def pull_image(self, ctx: Context, repository: str, tag: str) -> None: ...

    def create_network(self, ctx: Context, name: str, labels: Dict[str, str]) -> str: ...

    def create_volume(self, ctx: Context, labels: Dict[str, str]) -> str: ...

    def create_container(self, ctx: Context, spec: ContainerSpec) -> str: ...

    def start_container(self, ctx: Context, container_id: str) -> None: ...

    def wait_container(self, ctx: Context, container_id: str) -> int: ...

    def stop_container(self, ctx: Context, container_id: str, timeout_s: int) -> None: ...

    def remove_container(self, ctx: Context, container_id: str) -> None: ...

    def container_logs(self, ctx: Context, container_id: str, tail: int | None) -> Tuple[str, str]: ...

    def read_file(self, ctx: Context, volume: str, rel_path: str) -> bytes: ...

    def write_file(self, ctx: Context, volume: str, rel_path: str, data: bytes) -> None: ...

    def host_port(self, ctx: Context, container_id: str, container_port: str) -> str: ...

    def list_containers(self, ctx: Context, labels: Dict[str, str]) -> List[str]: ...
