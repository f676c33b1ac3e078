"""
文件功能：
    测试网管理服务：按配置构建单例网络，负责在服务启动时保证网络已初始化并启动。

公开接口：
    - get_network() -> PolkadotNetwork: 按配置懒加载的单例网络
    - ensure_started() -> NetworkStatus: 未启动时创建 docker 网络并执行 initialize + start
    - status() -> NetworkStatus: 获取网络状态，运行中时附带 RPC 健康探测
    - reset(): 丢弃单例（测试使用）
    - new_relayer() -> CosmosRelayer: 按配置创建接入当前网络的中继器驱动

内部方法：
    - _probe_health(address, timeout_s) -> bool: 调用节点 system_health

说明：
    - 启动失败不会自动重试，状态保持 FAILED，错误信息见 status().error。
"""

from __future__ import annotations

import threading

import httpx
from loguru import logger

from src.testnet.config import config
from src.testnet.errors import TestnetError
from src.testnet.relayer.core import CosmosRelayer
from src.testnet.runtime.base import CLEANUP_LABEL
from src.testnet.runtime.context import Context
from src.testnet.runtime.docker_cli import DockerCli
from .network import PolkadotNetwork
from .schemas import DockerImage, NetworkState, NetworkStatus

_lock = threading.Lock()
_start_lock = threading.Lock()
_network: PolkadotNetwork | None = None


def get_network() -> PolkadotNetwork:
    global _network
    with _lock:
        if _network is None:
            runtime = DockerCli(docker_bin=config.docker_bin, helper_image=config.helper_image)
            _network = PolkadotNetwork(
                config.test_name,
                config.relay_chain,
                config.num_relay_chain_nodes,
                config.parachains,
                runtime,
                test_modes=config.test_modes,
                max_workers=config.max_parallel_tasks,
            )
        return _network


def reset() -> None:
    global _network
    with _lock:
        _network = None


def _probe_health(address: str, timeout_s: float = 3.0) -> bool:
    """通过 JSON-RPC system_health 探测节点是否可用。"""
    url = address if address.startswith("http") else f"http://{address}"
    payload = {"jsonrpc": "2.0", "id": 1, "method": "system_health", "params": []}
    try:
        resp = httpx.post(url, json=payload, timeout=timeout_s)
        resp.raise_for_status()
        return "result" in resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"探测 {url} 失败: {e}")
        return False


def status() -> NetworkStatus:
    network = get_network()
    s = network.status()
    if s.state == NetworkState.RUNNING and s.host_rpc_address:
        s.healthy = _probe_health(s.host_rpc_address)
    return s


def ensure_started(ctx: Context | None = None) -> NetworkStatus:
    network = get_network()
    ctx = ctx or Context()
    with _start_lock:
        if network.state == NetworkState.UNPROVISIONED:
            logger.info(f"测试网 {config.test_name} 尚未启动，开始初始化")
            network_id = network.runtime.create_network(
                ctx, config.docker_network, {CLEANUP_LABEL: config.test_name}
            )
            network.initialize(ctx, network_id)
            network.start(ctx)
            logger.info(f"测试网已启动，RPC 地址：{network.get_rpc_address()}")
        elif network.state != NetworkState.RUNNING:
            logger.warning(f"测试网处于 {network.state.value} 状态，不再重复启动")
    return status()


def new_relayer() -> CosmosRelayer:
    """中继器与节点共用同一个 docker 网络，因此要求网络已初始化。"""
    network = get_network()
    if network.network_id is None:
        raise TestnetError("测试网尚未初始化，无法创建中继器")
    return CosmosRelayer(
        network.runtime,
        config.test_name,
        network.network_id,
        config.relayer_home,
        image=DockerImage(repository=config.relayer_image, version=config.relayer_version),
        log_tail=config.job_log_tail,
        stop_timeout_s=config.stop_timeout_s,
    )
