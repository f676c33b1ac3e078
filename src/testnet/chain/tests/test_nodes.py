"""
测试 nodes 模块：命名、多地址、容器命令以及平行链导出的错误路径。
"""

import json

import pytest

from src.testnet.chain.nodes import NODE_HOME, ParachainNode, RelayChainNode
from src.testnet.chain.schemas import ChainConfig, DockerImage, ParachainConfig
from src.testnet.errors import ContainerLifecycleError, ExportError, JobExecutionError
from src.testnet.identity.core import generate_node_key, provision_identity
from src.testnet.runtime.context import background
from src.testnet.runtime.tests.fake_runtime import FakeRuntime

IMAGE = DockerImage(repository="polkadot", version="v0.9.19", uid_gid="1025:1025")


def relay_node(runtime, index=0, test_name="TestRelay", beefy=False):
    cfg = ChainConfig(chain_id="rococo-local", images=[IMAGE], bin="polkadot")
    node = RelayChainNode(runtime, test_name, "net", provision_identity(index), cfg, beefy=beefy)
    node.volume_name = f"vol-{index}"
    runtime.volumes[node.volume_name] = {}
    return node


def para_node(runtime, index=0):
    cfg = ParachainConfig(chain_id="dev-2000", chain_name="composable", bin="parachain-node", image=IMAGE)
    node = ParachainNode(runtime, "TestRelay", "net", index, generate_node_key(), cfg, "rococo-local")
    node.volume_name = f"pvol-{index}"
    runtime.volumes[node.volume_name] = {}
    return node


def test_relay_node_name_and_multi_address():
    node = relay_node(FakeRuntime(), index=1, test_name="TestRelay/sub test")

    assert node.name() == "relaychain-1-rococo-local-TestRelay_sub_test"
    assert node.host_name() == node.name()
    peer_id = node.peer_id()
    assert peer_id.startswith("12D3KooW")
    assert node.multi_address() == f"/dns4/{node.host_name()}/tcp/27451/p2p/{peer_id}"
    assert node.bind() == [f"vol-1:{NODE_HOME}"]


def test_long_names_are_condensed_to_host_name():
    node = relay_node(FakeRuntime(), test_name="T" * 80)

    assert len(node.host_name()) == 63
    assert "_._" in node.host_name()


def test_relay_command():
    node = relay_node(FakeRuntime(), index=2)
    cmd = node.command()

    assert cmd[0] == "polkadot"
    assert f"--chain={NODE_HOME}/rococo-local-raw.json" in cmd
    assert f"--node-key={node.identity.node_key_hex}" in cmd
    assert "--name=Charlie" in cmd
    assert "--charlie" in cmd
    assert "--listen-addr=/ip4/0.0.0.0/tcp/27451" in cmd
    assert "--rpc-port=27452" in cmd
    assert "--ws-port=27454" in cmd
    assert "--prometheus-port=27453" in cmd
    assert "--beefy" not in cmd


def test_generate_chain_spec_failure_carries_output():
    runtime = FakeRuntime()
    runtime.on_command(lambda cmd: cmd[:2] == ["sh", "-c"], lambda rt, spec: (2, "", "unknown chain"))
    node = relay_node(runtime)

    with pytest.raises(JobExecutionError) as ei:
        node.generate_chain_spec(background())
    assert ei.value.exit_code == 2
    assert ei.value.stderr == "unknown chain"


def test_parachain_id_falls_back_to_camel_case_key():
    runtime = FakeRuntime()
    runtime.on_command(
        lambda cmd: cmd[1:2] == ["build-spec"],
        lambda rt, spec: (0, json.dumps({"paraId": 1000}), ""),
    )
    assert para_node(runtime).parachain_id(background()) == 1000


@pytest.mark.parametrize(
    "stdout",
    ["not json", json.dumps({"name": "no id"})],
)
def test_parachain_id_unusable_output(stdout):
    runtime = FakeRuntime()
    runtime.on_command(lambda cmd: cmd[1:2] == ["build-spec"], lambda rt, spec: (0, stdout, ""))

    with pytest.raises(ExportError):
        para_node(runtime).parachain_id(background())


def test_export_genesis_state_non_zero_exit():
    runtime = FakeRuntime()
    runtime.on_command(
        lambda cmd: cmd[1:2] == ["export-genesis-state"],
        lambda rt, spec: (1, "", "state export failed"),
    )

    with pytest.raises(ExportError) as ei:
        para_node(runtime).export_genesis_state(background())
    assert "state export failed" in str(ei.value)


def test_collator_beyond_name_table_has_no_dev_key_flag():
    node = para_node(FakeRuntime(), index=7)
    cmd = node.command()

    assert not any(flag in cmd for flag in ("--alice", "--bob", "--ferdie"))
    assert f"--public-addr={node.multi_address()}" in cmd


def test_create_container_failure_is_lifecycle_error():
    runtime = FakeRuntime()
    node = relay_node(runtime)
    runtime.fail_create.add(node.name())

    with pytest.raises(ContainerLifecycleError):
        node.create_container(background())


def test_start_before_create():
    with pytest.raises(ContainerLifecycleError):
        relay_node(FakeRuntime()).start_container(background())


def test_exec_job_runs_as_image_user_with_volume():
    runtime = FakeRuntime()
    seen = []
    runtime.on_command(lambda cmd: cmd == ["ls"], lambda rt, spec: (seen.append(spec), (0, "", ""))[1])
    node = relay_node(runtime)

    assert node.exec(background(), ["ls"]).ok
    spec = seen[0]
    assert spec.user == "1025:1025"
    assert spec.binds == [f"vol-0:{NODE_HOME}"]
    assert spec.entrypoint == []
    assert runtime.containers == {}
