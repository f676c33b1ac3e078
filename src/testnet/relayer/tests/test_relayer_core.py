"""
测试 CosmosRelayer：一次性任务命名与清理、链配置文件、通道解析、常驻中继进程。
"""

import json
import re

import pytest

from src.testnet.chain.schemas import ChainConfig
from src.testnet.errors import ContainerLifecycleError, JobExecutionError, OperationCancelled, ParseError
from src.testnet.relayer.core import DEFAULT_IMAGE, CosmosRelayer, capabilities, chain_config_to_relayer_chain_config
from src.testnet.relayer.schemas import Capability
from src.testnet.runtime.base import CLEANUP_LABEL
from src.testnet.runtime.context import Context, background
from src.testnet.runtime.tests.fake_runtime import FakeRuntime

CHANNEL = {
    "state": "STATE_OPEN",
    "ordering": "ORDER_UNORDERED",
    "counterparty": {"port_id": "transfer", "channel_id": "channel-0"},
    "connection_hops": ["connection-0"],
    "version": "ics20-1",
    "port_id": "transfer",
    "channel_id": "channel-0",
}


def rly_runtime(handlers=None):
    """handlers: {子命令: (exit_code, stdout, stderr)}，子命令为 rly 之后的第一个参数。"""
    runtime = FakeRuntime()
    runtime.jobs = []
    handlers = handlers or {}

    def handle(rt, spec):
        rt.jobs.append(spec)
        return handlers.get(spec.command[1], (0, "", ""))

    runtime.on_command(lambda cmd: cmd[:1] == ["rly"] and cmd[1] != "start", handle)
    return runtime


def new_relayer(runtime, tmp_path):
    return CosmosRelayer(runtime, "TestRelayer/link", "testnet-net", tmp_path, user="1000:1000")


def gaia_config():
    return ChainConfig(
        type="cosmos",
        name="gaia",
        chain_id="gaia-1",
        bin="gaiad",
        bech32_prefix="cosmos",
        denom="uatom",
        gas_prices="0.01uatom",
        gas_adjustment=1.3,
    )


def test_capabilities_disable_timestamp_timeout():
    caps = capabilities()
    assert caps[Capability.TIMESTAMP_TIMEOUT] is False
    assert caps[Capability.HEIGHT_TIMEOUT] is True


def test_relayer_chain_config_uses_dashed_keys():
    cfg = chain_config_to_relayer_chain_config(gaia_config(), "relayer-key", "http://gaia:26657", "gaia:9090")
    data = json.loads(cfg.model_dump_json(by_alias=True))

    assert data == {
        "type": "cosmos",
        "value": {
            "key": "relayer-key",
            "chain-id": "gaia-1",
            "rpc-addr": "http://gaia:26657",
            "grpc-addr": "gaia:9090",
            "account-prefix": "cosmos",
            "keyring-backend": "test",
            "gas-adjustment": 1.3,
            "gas-prices": "0.01uatom",
            "debug": True,
            "timeout": "10s",
            "output-format": "json",
            "sign-mode": "direct",
        },
    }


def test_home_dir_and_bind(tmp_path):
    relayer = new_relayer(FakeRuntime(), tmp_path)

    assert relayer.name() == "rly-TestRelayer_link"
    assert relayer.dir() == tmp_path / "rly-TestRelayer_link"
    assert relayer.dir().is_dir()
    assert relayer.bind() == [f"{tmp_path / 'rly-TestRelayer_link'}:/tmp/relayer"]


def test_add_chain_configuration_initializes_once(tmp_path):
    runtime = rly_runtime()
    relayer = new_relayer(runtime, tmp_path)
    ctx = background()

    relayer.add_chain_configuration(ctx, gaia_config(), "key", "http://gaia:26657", "gaia:9090")

    assert [spec.command for spec in runtime.jobs] == [
        ["rly", "config", "init", "--home", "/tmp/relayer"],
        ["rly", "chains", "add", "-f", "/tmp/relayer/gaia-1.json", "--home", "/tmp/relayer"],
    ]
    written = json.loads((relayer.dir() / "gaia-1.json").read_text(encoding="utf-8"))
    assert written["value"]["chain-id"] == "gaia-1"

    # rly config init 会在 home 目录下创建 config/
    (relayer.dir() / "config").mkdir()
    relayer.add_chain_configuration(ctx, gaia_config(), "key", "http://gaia:26657", "gaia:9090")
    assert [spec.command[1] for spec in runtime.jobs] == ["config", "chains", "chains"]


def test_job_containers_named_and_removed(tmp_path):
    runtime = rly_runtime()
    relayer = new_relayer(runtime, tmp_path)

    relayer.generate_path(background(), "gaia-1", "rococo-local", "demo")
    relayer.update_clients(background(), "demo")

    assert re.fullmatch(r"rly-TestRelayer_link-paths-new-[a-z]{3}", runtime.jobs[0].name)
    assert re.fullmatch(r"rly-TestRelayer_link-update-clients-[a-z]{3}", runtime.jobs[1].name)
    assert runtime.jobs[0].command == ["rly", "paths", "new", "gaia-1", "rococo-local", "demo", "--home", "/tmp/relayer"]
    assert runtime.jobs[0].user == "1000:1000"
    assert runtime.jobs[0].network_id == "testnet-net"
    assert runtime.list_containers(background(), {CLEANUP_LABEL: "TestRelayer/link"}) == []
    assert len(runtime.removed) == 2
    # 镜像每个实例只拉取一次
    assert runtime.pulled == [DEFAULT_IMAGE.ref()]


def test_failed_job_raises_with_output_and_still_cleans_up(tmp_path):
    runtime = rly_runtime({"tx": (1, "partial\n", "Error: no path found\n")})
    relayer = new_relayer(runtime, tmp_path)

    with pytest.raises(JobExecutionError) as ei:
        relayer.link_path(background(), "demo")

    assert ei.value.exit_code == 1
    assert ei.value.stdout == "partial\n"
    assert ei.value.stderr == "Error: no path found\n"
    assert runtime.list_containers(background(), {CLEANUP_LABEL: "TestRelayer/link"}) == []


def test_cancelled_job_raises_cancellation(tmp_path):
    runtime = rly_runtime()
    relayer = new_relayer(runtime, tmp_path)
    ctx = Context()
    ctx.cancel()

    with pytest.raises(OperationCancelled):
        relayer.update_clients(ctx, "demo")
    assert runtime.list_containers(background(), {CLEANUP_LABEL: "TestRelayer/link"}) == []


def test_get_channels_empty_before_linking(tmp_path):
    runtime = rly_runtime({"q": (0, "", "")})
    relayer = new_relayer(runtime, tmp_path)

    assert relayer.get_channels(background(), "gaia-1") == []


def test_get_channels_skips_malformed_lines(tmp_path):
    second = dict(CHANNEL, channel_id="channel-1")
    stdout = "\n".join([json.dumps(CHANNEL), "{not json", "", json.dumps(second)]) + "\n"
    runtime = rly_runtime({"q": (0, stdout, "")})
    relayer = new_relayer(runtime, tmp_path)

    channels = relayer.get_channels(background(), "gaia-1")

    assert [c.channel_id for c in channels] == ["channel-0", "channel-1"]
    assert channels[0].counterparty.port_id == "transfer"


def test_get_channels_keeps_record_with_missing_fields(tmp_path):
    partial = {k: v for k, v in CHANNEL.items() if k not in ("version", "connection_hops")}
    runtime = rly_runtime({"q": (0, json.dumps(partial) + "\n", "")})
    relayer = new_relayer(runtime, tmp_path)

    channels = relayer.get_channels(background(), "gaia-1")

    assert len(channels) == 1
    assert channels[0].channel_id == "channel-0"
    assert channels[0].version == ""
    assert channels[0].connection_hops == []


def test_add_key_parses_wallet(tmp_path):
    wallet = {"mnemonic": "abandon " * 11 + "about", "address": "cosmos1abc"}
    runtime = rly_runtime({"keys": (0, json.dumps(wallet), "")})
    relayer = new_relayer(runtime, tmp_path)

    result = relayer.add_key(background(), "gaia-1", "key")

    assert result.address == "cosmos1abc"
    assert runtime.jobs[0].command[:5] == ["rly", "keys", "add", "gaia-1", "key"]


def test_add_key_unparseable_output(tmp_path):
    runtime = rly_runtime({"keys": (0, "not a wallet", "")})
    with pytest.raises(ParseError):
        new_relayer(runtime, tmp_path).add_key(background(), "gaia-1", "key")


def test_restore_key_and_clear_queue_commands(tmp_path):
    runtime = rly_runtime()
    relayer = new_relayer(runtime, tmp_path)

    relayer.restore_key(background(), "gaia-1", "key", "word list")
    relayer.clear_queue(background(), "demo", "channel-0")

    assert runtime.jobs[0].command == ["rly", "keys", "restore", "gaia-1", "key", "word list", "--home", "/tmp/relayer"]
    assert runtime.jobs[1].command == ["rly", "tx", "relay-pkts", "demo", "channel-0", "--home", "/tmp/relayer"]


def test_start_and_stop_relayer(tmp_path):
    runtime = rly_runtime()
    relayer = new_relayer(runtime, tmp_path)
    ctx = background()

    relayer.start_relayer(ctx, "demo")

    running = runtime.running()
    assert len(running) == 1
    assert running[0].spec.name == "rly-TestRelayer_link-demo"
    assert running[0].spec.command == ["rly", "start", "demo", "--home", "/tmp/relayer", "--debug"]
    with pytest.raises(ContainerLifecycleError):
        relayer.start_relayer(ctx, "demo")

    relayer.stop_relayer(ctx)
    assert runtime.list_containers(ctx, {CLEANUP_LABEL: "TestRelayer/link"}) == []
    assert relayer.container_id is None


def test_stop_without_start(tmp_path):
    with pytest.raises(ContainerLifecycleError):
        new_relayer(FakeRuntime(), tmp_path).stop_relayer(background())
