"""
文件功能：
    中继链 + 平行链测试网的编排器。负责镜像拉取、节点身份派生、卷准备、
    创世文档生成 / 组合 / 分发，以及分批并发启动节点容器。

    状态机：
        UNPROVISIONED → IDENTITIES_DERIVED → VOLUMES_READY → SPEC_GENERATED
        → GENESIS_COMPOSED → RAW_SPEC_READY → CONTAINERS_STARTING → RUNNING
    任一阶段失败进入 FAILED，已创建的卷与容器保留在原处，由调用方按标签清理。

公开接口：
    - PolkadotNetwork.initialize(ctx, network_id)
    - PolkadotNetwork.start(ctx)
    - PolkadotNetwork.status() -> NetworkStatus
    - PolkadotNetwork.get_rpc_address() / get_grpc_address()
    - PolkadotNetwork.get_host_rpc_address() / get_host_grpc_address()
    - PolkadotNetwork.exec(ctx, cmd, env) -> JobResult

内部方法：
    - _pull_images: 拉取镜像，失败只记录日志
    - _generate_genesis: 在第一个中继链节点上生成、组合并转换 raw chain spec
    - _distribute_genesis: 将 raw chain spec 写入其余节点的卷
    - _launch: 创建并启动单个节点容器
"""

from __future__ import annotations

import hashlib
import json
from typing import Iterable, List, Sequence

from loguru import logger

from src.testnet.errors import OperationCancelled, TestnetError
from src.testnet.genesis.composer import compose_genesis
from src.testnet.identity.core import generate_node_key, provision_identity
from src.testnet.runtime.base import ContainerRuntime
from src.testnet.runtime.context import Context
from src.testnet.runtime.group import TaskGroup
from src.testnet.runtime.job import JobResult
from .nodes import RPC_PORT, WS_PORT, ChainNode, ParachainNode, RelayChainNode, port_number
from .schemas import ChainConfig, DockerImage, ModeSwitch, NetworkState, NetworkStatus, ParachainConfig


class PolkadotNetwork:
    def __init__(
        self,
        test_name: str,
        chain_config: ChainConfig,
        num_relay_chain_nodes: int,
        parachain_configs: Sequence[ParachainConfig],
        runtime: ContainerRuntime,
        test_modes: Iterable[ModeSwitch] = (),
        max_workers: int = 16,
    ):
        if not chain_config.images:
            raise ValueError("chain_config.images 不能为空")
        if num_relay_chain_nodes < 1:
            raise ValueError("至少需要一个中继链节点")
        self.test_name = test_name
        self.chain_config = chain_config
        self.num_relay_chain_nodes = num_relay_chain_nodes
        self.parachain_configs = list(parachain_configs)
        self.runtime = runtime
        self.test_modes = set(test_modes)
        self.max_workers = max_workers

        self.state = NetworkState.UNPROVISIONED
        self.relay_chain_nodes: List[RelayChainNode] = []
        self.parachain_nodes: List[List[ParachainNode]] = []
        self.network_id: str | None = None
        self.raw_genesis: bytes | None = None
        self.genesis_sha256: str | None = None
        self.last_error: str | None = None
        self._log = logger.bind(chain_id=chain_config.chain_id, test=test_name)

    @property
    def config(self) -> ChainConfig:
        return self.chain_config

    def all_nodes(self) -> List[ChainNode]:
        nodes: List[ChainNode] = list(self.relay_chain_nodes)
        for group in self.parachain_nodes:
            nodes.extend(group)
        return nodes

    def _set_state(self, state: NetworkState) -> None:
        self._log.info(f"网络状态 {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self, e: Exception) -> None:
        self.last_error = str(e)
        self._set_state(NetworkState.FAILED)

    def _images(self) -> List[DockerImage]:
        images: List[DockerImage] = []
        seen = set()
        for image in [*self.chain_config.images, *(p.image for p in self.parachain_configs)]:
            if image.ref() in seen:
                continue
            seen.add(image.ref())
            images.append(image)
        return images

    def _pull_images(self, ctx: Context) -> None:
        for image in self._images():
            try:
                self.runtime.pull_image(ctx, image.repository, image.version)
                self._log.info(f"已拉取镜像 {image.ref()}")
            except OperationCancelled:
                raise
            except TestnetError as e:
                self._log.warning(f"拉取镜像 {image.ref()} 失败，继续使用本地镜像: {e}")

    def initialize(self, ctx: Context, network_id: str) -> None:
        """拉取镜像、派生身份并为每个节点准备卷。

        :raises DerivationError: 中继链节点数超出身份名称表，此时尚未创建任何卷。
        :raises VolumeError: 卷创建或属主设置失败。
        """
        if self.state != NetworkState.UNPROVISIONED:
            raise TestnetError(f"网络已处于 {self.state.value} 状态，不能重复初始化")
        self.network_id = network_id
        try:
            self._pull_images(ctx)

            beefy = ModeSwitch.BEEFY in self.test_modes
            relay_nodes = [
                RelayChainNode(
                    self.runtime,
                    self.test_name,
                    network_id,
                    provision_identity(i),
                    self.chain_config,
                    beefy=beefy,
                )
                for i in range(self.num_relay_chain_nodes)
            ]
            parachain_nodes = [
                [
                    ParachainNode(
                        self.runtime,
                        self.test_name,
                        network_id,
                        i,
                        generate_node_key(),
                        parachain_config,
                        self.chain_config.chain_id,
                    )
                    for i in range(parachain_config.num_nodes)
                ]
                for parachain_config in self.parachain_configs
            ]
            self.relay_chain_nodes = relay_nodes
            self.parachain_nodes = parachain_nodes
            self._set_state(NetworkState.IDENTITIES_DERIVED)

            for node in self.all_nodes():
                ctx.check()
                node.provision_volume(ctx)
            self._set_state(NetworkState.VOLUMES_READY)
        except TestnetError as e:
            self._fail(e)
            raise

    def start(self, ctx: Context) -> None:
        """生成并分发创世文件，然后分两批并发启动中继链节点和平行链节点。

        每一批都等待全部任务结束后再上报第一个错误，失败时不回滚已启动的容器。
        """
        if self.state != NetworkState.VOLUMES_READY:
            raise TestnetError(f"网络处于 {self.state.value} 状态，需先完成 initialize")
        try:
            self._generate_genesis(ctx)
            self._distribute_genesis(ctx)

            self._set_state(NetworkState.CONTAINERS_STARTING)
            for wave in (self.relay_chain_nodes, [n for group in self.parachain_nodes for n in group]):
                if not wave:
                    continue
                group = TaskGroup(max_workers=self.max_workers, name=f"{self.chain_config.chain_id}-start")
                for node in wave:
                    group.go(self._launch, node, ctx)
                group.wait()
            self._set_state(NetworkState.RUNNING)
        except TestnetError as e:
            self._fail(e)
            raise

    def _generate_genesis(self, ctx: Context) -> None:
        first = self.relay_chain_nodes[0]
        first.generate_chain_spec(ctx)
        self._set_state(NetworkState.SPEC_GENERATED)

        content = self.runtime.read_file(ctx, first.volume_name, first.chain_spec_file_path_relative())
        try:
            chain_spec = json.loads(content)
        except json.JSONDecodeError as e:
            raise TestnetError(f"解析 chain spec {first.chain_spec_file_path_relative()} 失败: {e}") from e

        compose_genesis(chain_spec, self.relay_chain_nodes, self.parachain_nodes, ctx)
        edited = json.dumps(chain_spec, indent=2).encode("utf-8")
        self.runtime.write_file(ctx, first.volume_name, first.chain_spec_file_path_relative(), edited)
        self._set_state(NetworkState.GENESIS_COMPOSED)

        first.generate_chain_spec_raw(ctx)
        raw = self.runtime.read_file(ctx, first.volume_name, first.raw_chain_spec_file_path_relative())
        self.raw_genesis = bytes(raw)
        self.genesis_sha256 = hashlib.sha256(self.raw_genesis).hexdigest()
        self._log.info(f"raw chain spec 已生成，{len(self.raw_genesis)} 字节，sha256={self.genesis_sha256}")
        self._set_state(NetworkState.RAW_SPEC_READY)

    def _distribute_genesis(self, ctx: Context) -> None:
        first = self.relay_chain_nodes[0]
        group = TaskGroup(max_workers=self.max_workers, name=f"{self.chain_config.chain_id}-genesis")
        for node in self.all_nodes():
            if node is first:
                continue
            group.go(
                self.runtime.write_file,
                ctx,
                node.volume_name,
                node.raw_chain_spec_file_path_relative(),
                self.raw_genesis,
            )
        group.wait()

    def _launch(self, node: ChainNode, ctx: Context) -> None:
        node.create_container(ctx)
        node.start_container(ctx)

    def _require_nodes(self) -> None:
        if not self.relay_chain_nodes:
            raise TestnetError("网络尚未初始化")

    def _primary_node(self) -> ChainNode:
        """存在平行链时对外服务的是第一条平行链的第一个节点。"""
        self._require_nodes()
        if self.parachain_nodes and self.parachain_nodes[0]:
            return self.parachain_nodes[0][0]
        return self.relay_chain_nodes[0]

    def get_rpc_address(self) -> str:
        port = port_number(RPC_PORT)
        parachain_url = f"http://{self._primary_node().host_name()}:{port}"
        relay_chain_url = f"http://{self.relay_chain_nodes[0].host_name()}:{port}"
        return f"{parachain_url},{relay_chain_url}"

    def get_grpc_address(self) -> str:
        return f"{self._primary_node().host_name()}:{port_number(WS_PORT)}"

    def get_host_rpc_address(self) -> str:
        return self._primary_node().host_rpc_port

    def get_host_grpc_address(self) -> str:
        return self._primary_node().host_ws_port

    def exec(self, ctx: Context, cmd: List[str], env: List[str] | None = None) -> JobResult:
        self._require_nodes()
        return self.relay_chain_nodes[0].exec(ctx, cmd, env)

    def status(self) -> NetworkStatus:
        rpc_address = None
        host_rpc_address = None
        if self.relay_chain_nodes:
            rpc_address = self.get_rpc_address()
            host_rpc_address = self.get_host_rpc_address() or None
        return NetworkStatus(
            chain_id=self.chain_config.chain_id,
            state=self.state,
            relay_chain_nodes=[n.name() for n in self.relay_chain_nodes],
            parachain_nodes=[[n.name() for n in group] for group in self.parachain_nodes],
            genesis_sha256=self.genesis_sha256,
            rpc_address=rpc_address,
            host_rpc_address=host_rpc_address,
            error=self.last_error,
        )
