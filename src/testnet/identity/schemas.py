"""
文件功能：
    节点身份数据模型。

公开接口：
    - Sr25519Keypair: sr25519 公钥 + 64 字节私钥
    - NodeIdentity: 一个中继链节点的全部密钥材料及其派生地址
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat, PrivateFormat, NoEncryption

from .encoding import peer_id_from_ed25519, ss58_encode


class Sr25519Keypair(NamedTuple):
    public: bytes
    secret: bytes


def ed25519_public_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def ed25519_private_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())


@dataclass(frozen=True)
class NodeIdentity:
    """派生一次后不可变，由所属节点独占。

    node_key 是每次运行随机生成的传输层密钥；其余密钥由规范名确定性派生。
    """

    index: int
    canonical_name: str
    node_key: Ed25519PrivateKey
    ed25519_key: Ed25519PrivateKey
    account_key: Sr25519Keypair
    stash_key: Sr25519Keypair
    beefy_key: ec.EllipticCurvePrivateKey

    @property
    def peer_id(self) -> str:
        return peer_id_from_ed25519(ed25519_public_bytes(self.node_key))

    @property
    def node_key_hex(self) -> str:
        """--node-key 参数使用的 32 字节私钥十六进制。"""
        return ed25519_private_bytes(self.node_key).hex()

    @property
    def account_address(self) -> str:
        return ss58_encode(self.account_key.public)

    @property
    def stash_address(self) -> str:
        return ss58_encode(self.stash_key.public)

    @property
    def grandpa_address(self) -> str:
        return ss58_encode(ed25519_public_bytes(self.ed25519_key))

    @property
    def beefy_address(self) -> str:
        compressed = self.beefy_key.public_key().public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
        return ss58_encode(compressed)
