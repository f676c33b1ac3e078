"""
文件功能：
    通过一次性容器驱动 cosmos relayer（rly）二进制：配置链、管理密钥、建立路径、
    查询通道与转发数据包；另有一个常驻容器运行 `rly start`。

    所有一次性任务容器绑定宿主机上的中继器 home 目录，运行结束后无论成功与否都会被删除。
    非零退出或运行时错误以 JobExecutionError 返回给直接调用方，不做自动重试。

公开接口：
    - DEFAULT_IMAGE: 默认中继器镜像
    - capabilities(): 中继器能力映射（不支持时间戳超时）
    - chain_config_to_relayer_chain_config(...)
    - CosmosRelayer

内部方法：
    - CosmosRelayer._ensure_image: 每个实例只拉取一次镜像，失败仅记录日志
    - CosmosRelayer._parse_channel_line: 解析 `q channels` 的一行输出
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from loguru import logger
from pydantic import ValidationError

from src.testnet.chain.schemas import ChainConfig, DockerImage
from src.testnet.errors import ContainerLifecycleError, OperationCancelled, ParseError, TestnetError
from src.testnet.runtime.base import CLEANUP_LABEL, ContainerRuntime, ContainerSpec
from src.testnet.runtime.context import Context, background
from src.testnet.runtime.job import JobResult, handle_job_error, run_job
from src.testnet.runtime.naming import (
    condense_host_name,
    docker_user_string,
    rand_lower_case_letter_string,
    sanitize_container_name,
)
from .schemas import (
    Capability,
    ChannelOutput,
    RelayerChainConfig,
    RelayerChainConfigValue,
    RelayerWallet,
    full_capabilities,
)

DEFAULT_IMAGE = DockerImage(repository="ghcr.io/cosmos/relayer", version="v2.0.0-beta4")

RELAYER_HOME = "/tmp/relayer"


def capabilities() -> Dict[Capability, bool]:
    caps = full_capabilities()
    caps[Capability.TIMESTAMP_TIMEOUT] = False
    return caps


def chain_config_to_relayer_chain_config(
    chain_config: ChainConfig,
    key_name: str,
    rpc_addr: str,
    grpc_addr: str,
) -> RelayerChainConfig:
    return RelayerChainConfig(
        type=chain_config.type,
        value=RelayerChainConfigValue(
            key=key_name,
            chain_id=chain_config.chain_id,
            rpc_addr=rpc_addr,
            grpc_addr=grpc_addr,
            account_prefix=chain_config.bech32_prefix,
            gas_adjustment=chain_config.gas_adjustment,
            gas_prices=chain_config.gas_prices,
        ),
    )


class CosmosRelayer:
    def __init__(
        self,
        runtime: ContainerRuntime,
        test_name: str,
        network_id: str,
        home_root: str | Path,
        image: DockerImage = DEFAULT_IMAGE,
        log_tail: int = 50,
        stop_timeout_s: int = 30,
        user: str | None = None,
    ):
        self.runtime = runtime
        self.test_name = test_name
        self.network_id = network_id
        self.home_root = Path(home_root)
        self.image = image
        self.log_tail = log_tail
        self.stop_timeout_s = stop_timeout_s
        self.user = user or docker_user_string()
        self.container_id: str | None = None
        self.container_name: str | None = None
        self._image_ready = False
        self._log = logger.bind(test=test_name, image=image.ref())
        self.mkdir()

    def name(self) -> str:
        return f"rly-{sanitize_container_name(self.test_name)}"

    def host_name(self, path_name: str) -> str:
        return condense_host_name(f"{self.name()}-{path_name}")

    def dir(self) -> Path:
        """宿主机上的中继器 home 目录。"""
        return self.home_root / self.name()

    def mkdir(self) -> None:
        self.dir().mkdir(parents=True, exist_ok=True)

    def node_home(self) -> str:
        return RELAYER_HOME

    def bind(self) -> List[str]:
        return [f"{self.dir()}:{self.node_home()}"]

    def _ensure_image(self, ctx: Context) -> None:
        if self._image_ready:
            return
        try:
            self.runtime.pull_image(ctx, self.image.repository, self.image.version)
        except OperationCancelled:
            raise
        except TestnetError as e:
            self._log.warning(f"拉取中继器镜像失败，继续使用本地镜像: {e}")
        self._image_ready = True

    def node_job(self, ctx: Context, operation: str, cmd: List[str]) -> JobResult:
        """在一次性容器中执行 rly 命令并阻塞到容器退出。"""
        self._ensure_image(ctx)
        container = sanitize_container_name(f"{self.name()}-{operation}-{rand_lower_case_letter_string(3)}")
        spec = ContainerSpec(
            name=container,
            image=self.image.ref(),
            command=cmd,
            entrypoint=[],
            binds=self.bind(),
            network_id=self.network_id,
            user=self.user,
            hostname=condense_host_name(container),
            labels={CLEANUP_LABEL: self.test_name},
        )
        return run_job(self.runtime, ctx, spec, log_tail=self.log_tail)

    def _rly(self, *args: str) -> List[str]:
        return ["rly", *args, "--home", self.node_home()]

    def add_chain_configuration(
        self,
        ctx: Context,
        chain_config: ChainConfig,
        key_name: str,
        rpc_addr: str,
        grpc_addr: str,
    ) -> None:
        if not (self.dir() / "config").exists():
            result = self.node_job(ctx, "config-init", self._rly("config", "init"))
            handle_job_error(result, "初始化中继器配置")

        chain_config_file = f"{chain_config.chain_id}.json"
        relayer_config = chain_config_to_relayer_chain_config(chain_config, key_name, rpc_addr, grpc_addr)
        (self.dir() / chain_config_file).write_text(relayer_config.model_dump_json(by_alias=True), encoding="utf-8")

        container_path = f"{self.node_home()}/{chain_config_file}"
        result = self.node_job(ctx, "chains-add", self._rly("chains", "add", "-f", container_path))
        handle_job_error(result, f"添加链配置 {chain_config.chain_id}")

    def add_key(self, ctx: Context, chain_id: str, key_name: str) -> RelayerWallet:
        result = self.node_job(ctx, "keys-add", self._rly("keys", "add", chain_id, key_name))
        handle_job_error(result, f"为 {chain_id} 添加密钥 {key_name}")
        try:
            return RelayerWallet.model_validate_json(result.stdout)
        except ValidationError as e:
            raise ParseError(f"解析 keys add 输出失败: {e}") from e

    def restore_key(self, ctx: Context, chain_id: str, key_name: str, mnemonic: str) -> None:
        result = self.node_job(ctx, "keys-restore", self._rly("keys", "restore", chain_id, key_name, mnemonic))
        handle_job_error(result, f"为 {chain_id} 恢复密钥 {key_name}")

    def generate_path(self, ctx: Context, src_chain_id: str, dst_chain_id: str, path_name: str) -> None:
        result = self.node_job(ctx, "paths-new", self._rly("paths", "new", src_chain_id, dst_chain_id, path_name))
        handle_job_error(result, f"创建路径 {path_name}")

    def link_path(self, ctx: Context, path_name: str) -> None:
        result = self.node_job(ctx, "tx-link", self._rly("tx", "link", path_name))
        handle_job_error(result, f"链接路径 {path_name}")

    def _parse_channel_line(self, line: str) -> ChannelOutput:
        try:
            return ChannelOutput.model_validate_json(line)
        except ValidationError as e:
            raise ParseError(f"通道输出不是合法的 JSON 记录: {line!r}") from e

    def get_channels(self, ctx: Context, chain_id: str) -> List[ChannelOutput]:
        """每行 stdout 是一条 JSON 记录，无法解析的行记录日志后跳过。"""
        result = self.node_job(ctx, "q-channels", self._rly("q", "channels", chain_id))
        handle_job_error(result, f"查询 {chain_id} 的通道")
        channels: List[ChannelOutput] = []
        for line in result.stdout.split("\n"):
            if not line.strip():
                continue
            try:
                channels.append(self._parse_channel_line(line))
            except ParseError as e:
                self._log.warning(f"跳过无法解析的通道记录: {e}")
        return channels

    def clear_queue(self, ctx: Context, path_name: str, channel_id: str) -> None:
        result = self.node_job(ctx, "relay-pkts", self._rly("tx", "relay-pkts", path_name, channel_id))
        handle_job_error(result, f"转发路径 {path_name} 通道 {channel_id} 的数据包")

    def update_clients(self, ctx: Context, path_name: str) -> None:
        result = self.node_job(ctx, "update-clients", self._rly("tx", "update-clients", path_name))
        handle_job_error(result, f"更新路径 {path_name} 的客户端")

    def start_relayer(self, ctx: Context, path_name: str) -> None:
        if self.container_id is not None:
            raise ContainerLifecycleError(f"中继器容器 {self.container_name} 已在运行")
        self._ensure_image(ctx)
        container = sanitize_container_name(f"{self.name()}-{path_name}")
        cmd = ["rly", "start", path_name, "--home", self.node_home(), "--debug"]
        spec = ContainerSpec(
            name=container,
            image=self.image.ref(),
            command=cmd,
            entrypoint=[],
            binds=self.bind(),
            network_id=self.network_id,
            user=self.user,
            hostname=self.host_name(path_name),
            labels={CLEANUP_LABEL: self.test_name},
        )
        self._log.info(f"执行命令：{' '.join(cmd)}（容器 {container}）")
        try:
            container_id = self.runtime.create_container(ctx, spec)
        except OperationCancelled:
            raise
        except TestnetError as e:
            raise ContainerLifecycleError(f"创建中继器容器 {container} 失败: {e}") from e
        self.container_id = container_id
        self.container_name = container
        try:
            self.runtime.start_container(ctx, container_id)
        except OperationCancelled:
            raise
        except TestnetError as e:
            raise ContainerLifecycleError(f"启动中继器容器 {container} 失败: {e}") from e

    def stop_relayer(self, ctx: Context) -> None:
        if self.container_id is None:
            raise ContainerLifecycleError("中继器容器未启动")
        container_id, container = self.container_id, self.container_name
        try:
            self.runtime.stop_container(ctx, container_id, self.stop_timeout_s)
        except OperationCancelled:
            raise
        except TestnetError as e:
            raise ContainerLifecycleError(f"停止中继器容器 {container} 失败: {e}") from e

        try:
            stdout, stderr = self.runtime.container_logs(ctx, container_id, self.log_tail)
            self._log.debug(f"中继器容器 {container} 已停止\nstdout:\n{stdout}\nstderr:\n{stderr}")
        except TestnetError as e:
            self._log.warning(f"读取中继器容器 {container} 日志失败: {e}")

        try:
            self.runtime.remove_container(background(), container_id)
        except TestnetError as e:
            raise ContainerLifecycleError(f"删除中继器容器 {container} 失败: {e}") from e
        self.container_id = None
        self.container_name = None
