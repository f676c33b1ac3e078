"""
模拟 polkadot 节点二进制的内存运行时：
 - build-spec 写出一个最小 chain spec
 - build-spec --raw 基于编辑后的 chain spec 生成 raw 文件
 - 平行链 build-spec / export-genesis-* 通过 stdout 返回
"""

import json

from src.testnet.chain.nodes import NODE_HOME
from src.testnet.chain.schemas import ChainConfig, DockerImage, ParachainConfig
from src.testnet.runtime.tests.fake_runtime import FakeRuntime

RELAY_IMAGE = DockerImage(repository="ghcr.io/strangelove-ventures/heighliner/polkadot", version="v0.9.19")
PARA_IMAGE = DockerImage(repository="ghcr.io/strangelove-ventures/heighliner/composable", version="v2.1.9")


def _is_spec_build(cmd):
    return cmd[:2] == ["sh", "-c"] and "build-spec" in cmd[2] and "--raw" not in cmd[2]


def _is_raw_build(cmd):
    return cmd[:2] == ["sh", "-c"] and "--raw" in cmd[2]


def _write_spec(runtime, spec):
    volume = runtime.volume_for(spec, NODE_HOME)
    doc = {
        "name": "Rococo Local Testnet",
        "id": "rococo_local_testnet",
        "bootNodes": [],
        "genesis": {"runtime": {"runtime_genesis_config": {"session": {"keys": []}}}},
    }
    runtime.volumes[volume]["rococo-local.json"] = json.dumps(doc).encode()
    return 0, "", ""


def _write_raw(runtime, spec):
    volume = runtime.volume_for(spec, NODE_HOME)
    edited = runtime.volumes[volume]["rococo-local.json"]
    runtime.volumes[volume]["rococo-local-raw.json"] = b"raw:" + edited
    return 0, "", ""


def polkadot_runtime(para_id=2000):
    runtime = FakeRuntime()
    runtime.on_command(lambda cmd: cmd[:2] == ["chown", "-R"], lambda rt, spec: (0, "", ""))
    runtime.on_command(_is_raw_build, _write_raw)
    runtime.on_command(_is_spec_build, _write_spec)
    runtime.on_command(
        lambda cmd: len(cmd) > 1 and cmd[1] == "build-spec",
        lambda rt, spec: (0, json.dumps({"name": "composable", "para_id": para_id}), ""),
    )
    runtime.on_command(
        lambda cmd: len(cmd) > 1 and cmd[1] == "export-genesis-state",
        lambda rt, spec: (0, "0x00aabb\n", ""),
    )
    runtime.on_command(
        lambda cmd: len(cmd) > 1 and cmd[1] == "export-genesis-wasm",
        lambda rt, spec: (0, "0x0061736d\n", ""),
    )
    return runtime


def chain_config():
    return ChainConfig(chain_id="rococo-local", images=[RELAY_IMAGE], bin="polkadot")


def para_config(num_nodes=1):
    return ParachainConfig(
        chain_id="dev-2000",
        chain_name="composable",
        bin="parachain-node",
        image=PARA_IMAGE,
        num_nodes=num_nodes,
        flags=["--execution=wasm"],
        relay_chain_flags=["--execution=wasm"],
    )


