"""
创世文档中会话密钥与平行链注册条目的数据模型。
"""

from __future__ import annotations

from pydantic import BaseModel


class PolkadotAuthority(BaseModel):
    """一个验证人在 session.keys 中的各角色公钥地址。"""

    grandpa: str
    babe: str
    im_online: str
    parachain_validator: str
    authority_discovery: str
    para_validator: str
    para_assignment: str
    beefy: str


class PolkadotParachainSpec(BaseModel):
    """paras.paras 中的平行链创世信息。"""

    genesis_head: str
    validation_code: str
    parachain: bool = True
