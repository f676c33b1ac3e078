"""
文件功能：
    中继链节点与平行链节点。两者共享卷、容器生命周期与一次性命令执行能力；
    地址派生与 chain spec 生成只存在于中继链节点，平行链 ID 查询与创世导出只存在于平行链节点。

公开接口：
    - NODE_HOME: 节点卷在容器内的挂载点
    - P2P_PORT / RPC_PORT / PROMETHEUS_PORT / WS_PORT
    - ChainNode: 共享能力
    - RelayChainNode
    - ParachainNode

内部方法：
    - ChainNode._set_volume_owner: 以 root 运行一次性容器修正卷属主
    - ChainNode._record_host_ports: 启动后记录宿主机映射端口
"""

from __future__ import annotations

import json
import posixpath
from typing import Any, Dict, List

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from loguru import logger

from src.testnet.errors import ContainerLifecycleError, ExportError, OperationCancelled, TestnetError, VolumeError
from src.testnet.identity.core import INDEXED_NAMES
from src.testnet.identity.encoding import peer_id_from_ed25519
from src.testnet.identity.schemas import NodeIdentity, ed25519_private_bytes, ed25519_public_bytes
from src.testnet.runtime.base import CLEANUP_LABEL, NODE_OWNER_LABEL, ContainerRuntime, ContainerSpec
from src.testnet.runtime.context import Context
from src.testnet.runtime.job import JobResult, handle_job_error, run_job
from src.testnet.runtime.naming import condense_host_name, rand_lower_case_letter_string, sanitize_container_name
from .schemas import ChainConfig, DockerImage, ParachainConfig

NODE_HOME = "/home/heighliner"

P2P_PORT = "27451/tcp"
RPC_PORT = "27452/tcp"
PROMETHEUS_PORT = "27453/tcp"
WS_PORT = "27454/tcp"


def port_number(port: str) -> str:
    return port.split("/")[0]


class ChainNode:
    """一个节点容器：独占自己的卷与容器。"""

    def __init__(
        self,
        runtime: ContainerRuntime,
        test_name: str,
        network_id: str,
        index: int,
        image: DockerImage,
        bin: str,
        relay_chain_id: str,
    ):
        self.runtime = runtime
        self.test_name = test_name
        self.network_id = network_id
        self.index = index
        self.image = image
        self.bin = bin
        self.relay_chain_id = relay_chain_id
        self.volume_name: str | None = None
        self.container_id: str | None = None
        self.host_rpc_port = ""
        self.host_ws_port = ""

    @property
    def node_key(self) -> Ed25519PrivateKey:
        raise NotImplementedError

    def name(self) -> str:
        raise NotImplementedError

    def command(self) -> List[str]:
        raise NotImplementedError

    def host_name(self) -> str:
        return condense_host_name(self.name())

    def labels(self) -> Dict[str, str]:
        return {CLEANUP_LABEL: self.test_name, NODE_OWNER_LABEL: self.name()}

    def bind(self) -> List[str]:
        return [f"{self.volume_name}:{NODE_HOME}"]

    def peer_id(self) -> str:
        return peer_id_from_ed25519(ed25519_public_bytes(self.node_key))

    def node_key_hex(self) -> str:
        return ed25519_private_bytes(self.node_key).hex()

    def multi_address(self) -> str:
        return f"/dns4/{self.host_name()}/tcp/{port_number(P2P_PORT)}/p2p/{self.peer_id()}"

    def raw_chain_spec_file_path_relative(self) -> str:
        return f"{self.relay_chain_id}-raw.json"

    def raw_chain_spec_file_path_full(self) -> str:
        return posixpath.join(NODE_HOME, self.raw_chain_spec_file_path_relative())

    def provision_volume(self, ctx: Context) -> None:
        try:
            self.volume_name = self.runtime.create_volume(ctx, self.labels())
        except OperationCancelled:
            raise
        except TestnetError as e:
            raise VolumeError(f"为节点 {self.name()} 创建卷失败: {e}") from e
        self._set_volume_owner(ctx)
        logger.info(f"节点 {self.name()} 的卷 {self.volume_name} 已就绪")

    def _set_volume_owner(self, ctx: Context) -> None:
        spec = ContainerSpec(
            name=sanitize_container_name(f"{self.name()}-volume-owner-{rand_lower_case_letter_string(3)}"),
            image=self.image.ref(),
            command=["chown", "-R", self.image.uid_gid, NODE_HOME],
            entrypoint=[],
            binds=self.bind(),
            user="0:0",
            labels={CLEANUP_LABEL: self.test_name},
        )
        result = run_job(self.runtime, ctx, spec)
        if not result.ok:
            raise VolumeError(
                f"设置卷 {self.volume_name} 属主为 {self.image.uid_gid} 失败: "
                f"{result.error or result.stderr or result.exit_code}"
            )

    def exec(self, ctx: Context, cmd: List[str], env: List[str] | None = None) -> JobResult:
        """在挂载本节点卷的一次性容器中执行命令。"""
        spec = ContainerSpec(
            name=sanitize_container_name(f"{self.name()}-exec-{rand_lower_case_letter_string(3)}"),
            image=self.image.ref(),
            command=cmd,
            entrypoint=[],
            env=env or [],
            binds=self.bind(),
            network_id=self.network_id,
            user=self.image.uid_gid,
            labels={CLEANUP_LABEL: self.test_name},
        )
        return run_job(self.runtime, ctx, spec)

    def create_container(self, ctx: Context) -> None:
        spec = ContainerSpec(
            name=self.name(),
            image=self.image.ref(),
            command=self.command(),
            entrypoint=[],
            binds=self.bind(),
            network_id=self.network_id,
            user=self.image.uid_gid,
            hostname=self.host_name(),
            labels=self.labels(),
            exposed_ports=[P2P_PORT, RPC_PORT, PROMETHEUS_PORT, WS_PORT],
        )
        logger.info(f"创建容器 {self.name()}：{' '.join(spec.command)}")
        try:
            self.container_id = self.runtime.create_container(ctx, spec)
        except OperationCancelled:
            raise
        except TestnetError as e:
            raise ContainerLifecycleError(f"创建容器 {self.name()} 失败: {e}") from e

    def start_container(self, ctx: Context) -> None:
        if self.container_id is None:
            raise ContainerLifecycleError(f"容器 {self.name()} 尚未创建")
        logger.info(f"启动容器 {self.name()}")
        try:
            self.runtime.start_container(ctx, self.container_id)
            self._record_host_ports(ctx)
        except OperationCancelled:
            raise
        except TestnetError as e:
            raise ContainerLifecycleError(f"启动容器 {self.name()} 失败: {e}") from e

    def _record_host_ports(self, ctx: Context) -> None:
        self.host_rpc_port = self.runtime.host_port(ctx, self.container_id, RPC_PORT)
        self.host_ws_port = self.runtime.host_port(ctx, self.container_id, WS_PORT)


class RelayChainNode(ChainNode):
    def __init__(
        self,
        runtime: ContainerRuntime,
        test_name: str,
        network_id: str,
        identity: NodeIdentity,
        chain_config: ChainConfig,
        beefy: bool = False,
    ):
        super().__init__(
            runtime,
            test_name,
            network_id,
            identity.index,
            chain_config.images[0],
            chain_config.bin,
            chain_config.chain_id,
        )
        self.identity = identity
        self.chain_config = chain_config
        self.beefy = beefy

    @property
    def node_key(self) -> Ed25519PrivateKey:
        return self.identity.node_key

    def name(self) -> str:
        return f"relaychain-{self.index}-{self.chain_config.chain_id}-{sanitize_container_name(self.test_name)}"

    @property
    def stash_address(self) -> str:
        return self.identity.stash_address

    @property
    def account_address(self) -> str:
        return self.identity.account_address

    @property
    def grandpa_address(self) -> str:
        return self.identity.grandpa_address

    @property
    def beefy_address(self) -> str:
        return self.identity.beefy_address

    def chain_spec_file_path_relative(self) -> str:
        return f"{self.chain_config.chain_id}.json"

    def chain_spec_file_path_full(self) -> str:
        return posixpath.join(NODE_HOME, self.chain_spec_file_path_relative())

    def generate_chain_spec(self, ctx: Context) -> None:
        cmd = (
            f"{self.bin} build-spec --chain={self.chain_config.chain_id} --disable-default-bootnode"
            f" > {self.chain_spec_file_path_full()}"
        )
        handle_job_error(self.exec(ctx, ["sh", "-c", cmd]), f"在 {self.name()} 上生成 chain spec")

    def generate_chain_spec_raw(self, ctx: Context) -> None:
        cmd = (
            f"{self.bin} build-spec --chain={self.chain_spec_file_path_full()} --raw"
            f" > {self.raw_chain_spec_file_path_full()}"
        )
        handle_job_error(self.exec(ctx, ["sh", "-c", cmd]), f"在 {self.name()} 上生成 raw chain spec")

    def command(self) -> List[str]:
        cmd = [
            self.bin,
            f"--chain={self.raw_chain_spec_file_path_full()}",
            "--rpc-external",
            "--ws-external",
            "--rpc-cors=all",
            "--prometheus-external",
            f"--node-key={self.node_key_hex()}",
            f"--name={self.identity.canonical_name}",
            f"--listen-addr=/ip4/0.0.0.0/tcp/{port_number(P2P_PORT)}",
            f"--base-path={NODE_HOME}",
            f"--rpc-port={port_number(RPC_PORT)}",
            f"--ws-port={port_number(WS_PORT)}",
            f"--prometheus-port={port_number(PROMETHEUS_PORT)}",
            f"--{self.identity.canonical_name.lower()}",
        ]
        if self.beefy:
            cmd.append("--beefy")
        return cmd


class ParachainNode(ChainNode):
    """平行链节点只需要传输层密钥，不参与中继链共识身份派生。"""

    def __init__(
        self,
        runtime: ContainerRuntime,
        test_name: str,
        network_id: str,
        index: int,
        node_key: Ed25519PrivateKey,
        parachain_config: ParachainConfig,
        relay_chain_id: str,
    ):
        super().__init__(
            runtime,
            test_name,
            network_id,
            index,
            parachain_config.image,
            parachain_config.bin,
            relay_chain_id,
        )
        self._node_key = node_key
        self.parachain_config = parachain_config

    @property
    def node_key(self) -> Ed25519PrivateKey:
        return self._node_key

    @property
    def chain_id(self) -> str:
        return self.parachain_config.chain_id

    def name(self) -> str:
        return f"{self.bin}-{self.index}-{self.chain_id}-{sanitize_container_name(self.test_name)}"

    def _exec_output(self, ctx: Context, cmd: List[str], what: str) -> str:
        result = self.exec(ctx, cmd)
        if not result.ok:
            raise ExportError(
                f"{what} 失败（{self.name()}）: {result.error or f'退出码 {result.exit_code}'}\n"
                f"stderr:\n{result.stderr}"
            )
        return result.stdout

    def parachain_id(self, ctx: Context) -> Any:
        """返回平行链 chain spec 中的 para_id，原样透传。"""
        stdout = self._exec_output(ctx, [self.bin, "build-spec", f"--chain={self.chain_id}"], "查询平行链 ID")
        try:
            spec = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ExportError(f"解析平行链 {self.chain_id} 的 chain spec 失败: {e}") from e
        for key in ("para_id", "paraId"):
            if isinstance(spec, dict) and key in spec:
                return spec[key]
        raise ExportError(f"平行链 {self.chain_id} 的 chain spec 中没有 para_id")

    def export_genesis_state(self, ctx: Context) -> str:
        cmd = [self.bin, "export-genesis-state", f"--chain={self.chain_id}"]
        return self._exec_output(ctx, cmd, "导出创世状态").strip()

    def export_genesis_wasm(self, ctx: Context) -> str:
        cmd = [self.bin, "export-genesis-wasm", f"--chain={self.chain_id}"]
        return self._exec_output(ctx, cmd, "导出验证代码").strip()

    def command(self) -> List[str]:
        cmd = [
            self.bin,
            f"--chain={self.chain_id}",
            "--collator",
            f"--node-key={self.node_key_hex()}",
            "--unsafe-ws-external",
            "--unsafe-rpc-external",
            "--prometheus-external",
            "--rpc-cors=all",
            f"--rpc-port={port_number(RPC_PORT)}",
            f"--ws-port={port_number(WS_PORT)}",
            f"--prometheus-port={port_number(PROMETHEUS_PORT)}",
            f"--listen-addr=/ip4/0.0.0.0/tcp/{port_number(P2P_PORT)}",
            f"--public-addr={self.multi_address()}",
            f"--base-path={NODE_HOME}",
        ]
        # 开发密钥仅用于出块，超出名称表的收集人节点不带该参数
        if self.index < len(INDEXED_NAMES):
            cmd.append(f"--{INDEXED_NAMES[self.index]}")
        cmd.extend(self.parachain_config.flags)
        cmd.extend(["--", f"--chain={self.raw_chain_spec_file_path_full()}"])
        cmd.extend(self.parachain_config.relay_chain_flags)
        return cmd
