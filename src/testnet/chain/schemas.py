"""
文件功能：
    定义中继链 / 平行链网络相关的公开数据模型（Pydantic）。

公开接口：
    - DockerImage: 节点镜像
    - ChainConfig: 网络静态参数（调用方提供，核心只读）
    - ParachainConfig: 单条平行链的参数，一个配置展开为多个平行链节点
    - NetworkState: 编排状态机的状态
    - NetworkStatus: 网络状态查询结果
    - ModeSwitch: 测试模式开关（如 beefy）

内部方法：
    无
"""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class DockerImage(BaseModel):
    repository: str = Field(description="镜像仓库")
    version: str = Field(description="镜像标签")
    uid_gid: str = Field(default="1025:1025", description="容器内进程的 uid:gid，卷属主据此设置")

    def ref(self) -> str:
        return f"{self.repository}:{self.version}"


class ChainConfig(BaseModel):
    type: str = Field(default="polkadot", description="链类型")
    name: str = Field(default="polkadot", description="链名称")
    chain_id: str = Field(default="rococo-local", description="链标识，同时作为 build-spec 的 --chain 参数")
    images: List[DockerImage] = Field(default_factory=list, description="节点镜像，第一个用于中继链节点")
    bin: str = Field(default="polkadot", description="节点二进制名")
    bech32_prefix: str = Field(default="", description="账户前缀")
    denom: str = Field(default="", description="原生代币单位（供调用方使用，编排器不读取）")
    gas_prices: str = Field(default="", description="gas 价格")
    gas_adjustment: float = Field(default=1.0, description="gas 调整系数")
    trusting_period: str = Field(default="", description="轻客户端信任期（供调用方使用，编排器不读取）")
    no_host_mount: bool = Field(default=False, description="是否禁止绑定宿主机目录（供调用方使用，编排器不读取）")


class ParachainConfig(BaseModel):
    chain_id: str = Field(description="平行链 chain spec 标识")
    chain_name: str = Field(description="平行链名称（供调用方使用，编排器不读取）")
    bin: str = Field(description="平行链节点二进制名")
    image: DockerImage = Field(description="平行链节点镜像")
    num_nodes: int = Field(default=1, ge=1, description="平行链节点数量")
    flags: List[str] = Field(default_factory=list, description="平行链节点的额外参数")
    relay_chain_flags: List[str] = Field(default_factory=list, description="转发给内嵌中继链节点的参数")
    finality_gadget: str = Field(default="", description="最终性组件名称（供调用方使用，编排器不读取）")


class NetworkState(str, Enum):
    UNPROVISIONED = "unprovisioned"
    IDENTITIES_DERIVED = "identities_derived"
    VOLUMES_READY = "volumes_ready"
    SPEC_GENERATED = "spec_generated"
    GENESIS_COMPOSED = "genesis_composed"
    RAW_SPEC_READY = "raw_spec_ready"
    CONTAINERS_STARTING = "containers_starting"
    RUNNING = "running"
    FAILED = "failed"


class NetworkStatus(BaseModel):
    """网络状态。"""

    chain_id: str = Field(description="中继链标识")
    state: NetworkState = Field(description="编排状态")
    relay_chain_nodes: List[str] = Field(default_factory=list, description="中继链节点名")
    parachain_nodes: List[List[str]] = Field(default_factory=list, description="按平行链分组的节点名")
    genesis_sha256: str | None = Field(default=None, description="raw 创世文件的 SHA-256")
    rpc_address: str | None = Field(default=None, description="容器网络内可访问的 RPC 地址")
    host_rpc_address: str | None = Field(default=None, description="宿主机可访问的 RPC 地址")
    healthy: bool | None = Field(default=None, description="宿主机 RPC 的 system_health 探测结果，未运行时为空")
    error: str | None = Field(default=None, description="最近一次失败的错误信息")


class ModeSwitch(str, Enum):
    """测试模式开关，随配置传入编排器。"""

    BEEFY = "beefy"
