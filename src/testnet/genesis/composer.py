"""
文件功能：
    将中继链节点与平行链信息写入第一个节点生成的 chain spec。

公开接口：
    - GENESIS_BALANCE: 每个 stash / account 地址的初始余额
    - VALIDATION_UPGRADE_DELAY: 平行链升级延迟
    - runtime_genesis_path(*path): runtime_genesis_config 下的完整路径
    - compose_genesis(chain_spec, relay_nodes, parachain_groups, ctx): 就地修改文档

说明：
    任一字段写入或导出失败都会中止组合，错误信息指明失败的字段。
    组合过程不做跨字段一致性校验（如重复地址），由节点二进制在转换 raw spec 时检查。
"""

from __future__ import annotations

from typing import Any, List, Protocol, Sequence

from loguru import logger

from src.testnet.errors import DocumentPathError, ExportError
from src.testnet.runtime.context import Context
from .document import Segment, set_path
from .schemas import PolkadotAuthority, PolkadotParachainSpec

GENESIS_BALANCE = 1_000_000_000_000_000_000
VALIDATION_UPGRADE_DELAY = 2


class RelayNodeAddresses(Protocol):
    def multi_address(self) -> str: ...

    @property
    def stash_address(self) -> str: ...

    @property
    def account_address(self) -> str: ...

    @property
    def grandpa_address(self) -> str: ...

    @property
    def beefy_address(self) -> str: ...


class ParachainGenesisSource(Protocol):
    def parachain_id(self, ctx: Context) -> Any: ...

    def export_genesis_state(self, ctx: Context) -> str: ...

    def export_genesis_wasm(self, ctx: Context) -> str: ...


def runtime_genesis_path(*path: Segment) -> tuple:
    return ("genesis", "runtime", "runtime_genesis_config", *path)


def _set_field(chain_spec: Any, field: str, value: Any, *path: Segment) -> None:
    try:
        set_path(chain_spec, value, *path)
    except DocumentPathError as e:
        raise DocumentPathError(f"设置 {field} 失败: {e}", e.segment) from e


def compose_genesis(
    chain_spec: Any,
    relay_nodes: Sequence[RelayNodeAddresses],
    parachain_groups: Sequence[Sequence[ParachainGenesisSource]],
    ctx: Context,
) -> None:
    boot_nodes: List[str] = []
    authorities: List[list] = []
    balances: List[list] = []
    sudo_address = ""
    for i, node in enumerate(relay_nodes):
        boot_nodes.append(node.multi_address())
        stash_address = node.stash_address
        account_address = node.account_address
        balances.append([stash_address, GENESIS_BALANCE])
        balances.append([account_address, GENESIS_BALANCE])
        if i == 0:
            sudo_address = account_address
        authority = PolkadotAuthority(
            grandpa=node.grandpa_address,
            babe=account_address,
            im_online=account_address,
            parachain_validator=account_address,
            authority_discovery=account_address,
            para_validator=account_address,
            para_assignment=account_address,
            beefy=node.beefy_address,
        )
        authorities.append([stash_address, stash_address, authority.model_dump()])

    _set_field(chain_spec, "boot nodes", boot_nodes, "bootNodes")
    _set_field(chain_spec, "authorities", authorities, *runtime_genesis_path("session", "keys"))
    _set_field(chain_spec, "balances", balances, *runtime_genesis_path("balances", "balances"))
    _set_field(chain_spec, "sudo key", sudo_address, *runtime_genesis_path("sudo", "key"))
    _set_field(
        chain_spec,
        "validation upgrade delay",
        VALIDATION_UPGRADE_DELAY,
        *runtime_genesis_path("configuration", "config", "validation_upgrade_delay"),
    )

    parachains: List[list] = []
    for group in parachain_groups:
        first = group[0]
        try:
            parachain_id = first.parachain_id(ctx)
        except ExportError as e:
            raise ExportError(f"获取平行链 ID 失败: {e}") from e
        try:
            genesis_state = first.export_genesis_state(ctx)
        except ExportError as e:
            raise ExportError(f"导出平行链创世状态失败: {e}") from e
        try:
            genesis_wasm = first.export_genesis_wasm(ctx)
        except ExportError as e:
            raise ExportError(f"导出平行链验证代码失败: {e}") from e
        spec = PolkadotParachainSpec(genesis_head=genesis_state, validation_code=genesis_wasm, parachain=True)
        parachains.append([parachain_id, spec.model_dump()])

    _set_field(chain_spec, "parachains", parachains, *runtime_genesis_path("paras", "paras"))
    logger.info(
        f"创世文档已组合：{len(relay_nodes)} 个验证人，{len(balances)} 条余额，{len(parachains)} 条平行链"
    )
