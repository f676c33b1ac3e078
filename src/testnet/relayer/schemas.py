"""
文件功能：
    中继器驱动使用的数据模型：链配置文件、通道查询结果、钱包与能力集合。

公开接口：
    - RelayerChainConfigValue / RelayerChainConfig: 写入中继器 home 目录的链配置（键名使用连字符）
    - ChannelCounterparty / ChannelOutput: `rly q channels` 的单行输出
    - RelayerWallet: `rly keys add` 的输出
    - Capability: 中继器能力项
    - full_capabilities(): 所有能力均可用的映射
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class RelayerChainConfigValue(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    chain_id: str = Field(alias="chain-id")
    rpc_addr: str = Field(alias="rpc-addr")
    grpc_addr: str = Field(alias="grpc-addr")
    account_prefix: str = Field(alias="account-prefix")
    keyring_backend: str = Field(default="test", alias="keyring-backend")
    gas_adjustment: float = Field(alias="gas-adjustment")
    gas_prices: str = Field(alias="gas-prices")
    debug: bool = True
    timeout: str = "10s"
    output_format: str = Field(default="json", alias="output-format")
    sign_mode: str = Field(default="direct", alias="sign-mode")


class RelayerChainConfig(BaseModel):
    type: str
    value: RelayerChainConfigValue


class ChannelCounterparty(BaseModel):
    port_id: str = ""
    channel_id: str = ""


class ChannelOutput(BaseModel):
    """缺失的字段取零值，只有非 JSON 对象的行才视为无法解析。"""

    state: str = ""
    ordering: str = ""
    counterparty: ChannelCounterparty = Field(default_factory=ChannelCounterparty)
    connection_hops: List[str] = Field(default_factory=list)
    version: str = ""
    port_id: str = ""
    channel_id: str = ""


class RelayerWallet(BaseModel):
    mnemonic: str = ""
    address: str = ""


class Capability(str, Enum):
    TIMESTAMP_TIMEOUT = "timestamp_timeout"
    HEIGHT_TIMEOUT = "height_timeout"


def full_capabilities() -> Dict[Capability, bool]:
    return {c: True for c in Capability}
