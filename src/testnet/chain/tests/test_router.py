"""
测试 router.py 与 services.py：状态查询、按需启动、启动失败映射为 500。
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import patch

import httpx
import pytest

from src.testnet.chain import services
from src.testnet.chain.network import PolkadotNetwork
from src.testnet.chain.router import router
from src.testnet.chain.schemas import NetworkState, NetworkStatus
from src.testnet.chain.tests.polkadot_fakes import chain_config, polkadot_runtime
from src.testnet.errors import ContainerLifecycleError, TestnetError
from src.testnet.runtime.context import background

app = FastAPI()
app.include_router(router, prefix="/v1")

client = TestClient(app)


def fake_network(runtime, num_nodes=1):
    return PolkadotNetwork("TestRouter", chain_config(), num_nodes, [], runtime)


def test_status_endpoint():
    with patch("src.testnet.chain.services.status") as mock_status:
        mock_status.return_value = NetworkStatus(chain_id="rococo-local", state=NetworkState.UNPROVISIONED)
        response = client.get("/v1/network/status")

    assert response.status_code == 200
    assert response.json()["state"] == "unprovisioned"
    assert response.json()["relay_chain_nodes"] == []


def test_ensure_started_error_maps_to_500():
    with patch("src.testnet.chain.services.ensure_started", side_effect=ContainerLifecycleError("启动容器失败")):
        response = client.post("/v1/network/ensure-started")

    assert response.status_code == 500
    assert "启动容器失败" in response.json()["detail"]


def test_ensure_started_brings_network_up_once(monkeypatch):
    runtime = polkadot_runtime()
    network = fake_network(runtime)
    monkeypatch.setattr(services, "_network", network)
    monkeypatch.setattr(services, "_probe_health", lambda address, timeout_s=3.0: True)

    response = client.post("/v1/network/ensure-started")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "running"
    assert body["healthy"] is True
    assert body["host_rpc_address"] == "0.0.0.0:127452"
    assert body["genesis_sha256"] == network.genesis_sha256
    assert len(runtime.running()) == 1

    # 再次调用不会重复启动
    client.post("/v1/network/ensure-started")
    assert len(runtime.running()) == 1
    assert list(runtime.networks) == ["testnet"]


def test_failed_network_is_not_restarted(monkeypatch):
    runtime = polkadot_runtime()
    network = fake_network(runtime, num_nodes=6)
    monkeypatch.setattr(services, "_network", network)

    response = client.post("/v1/network/ensure-started")
    assert response.status_code == 500

    status = services.ensure_started()
    assert status.state == NetworkState.FAILED
    assert status.healthy is None
    assert "名称表" in status.error


def test_probe_health(monkeypatch):
    def handler(request):
        assert request.url.host == "127.0.0.1"
        assert request.url.port == 49153
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"peers": 2}})

    transport = httpx.MockTransport(handler)
    monkeypatch.setattr(
        services.httpx, "post", lambda url, **kw: httpx.Client(transport=transport).post(url, **kw)
    )
    assert services._probe_health("127.0.0.1:49153") is True


def test_probe_health_unreachable(monkeypatch):
    def boom(url, **kw):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(services.httpx, "post", boom)
    assert services._probe_health("http://127.0.0.1:1") is False


def test_new_relayer_requires_initialized_network(monkeypatch, tmp_path):
    runtime = polkadot_runtime()
    network = fake_network(runtime)
    monkeypatch.setattr(services, "_network", network)
    monkeypatch.setattr(services.config, "relayer_home", str(tmp_path))

    with pytest.raises(TestnetError):
        services.new_relayer()

    network.initialize(background(), "testnet-net")
    relayer = services.new_relayer()

    assert relayer.network_id == "testnet-net"
    assert relayer.image.ref() == f"{services.config.relayer_image}:{services.config.relayer_version}"
    assert relayer.log_tail == services.config.job_log_tail
    assert relayer.dir().parent == tmp_path
