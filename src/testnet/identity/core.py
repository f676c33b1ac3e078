"""
文件功能：
    节点身份派生：根据节点序号与固定的名称表确定性地派生共识相关密钥。

    派生方式与 Substrate 开发密钥一致（//Alice、//Alice//stash 等），
    种子为公开的开发助记词对应的 mini secret，因此节点可以直接以 --alice 等参数启动。

公开接口：
    - INDEXED_NAMES: 节点名称表（容量上限）
    - canonical_name(index): 规范化（首字母大写）的节点名
    - generate_node_key(): 随机生成的传输层 ed25519 密钥
    - derive_ed25519_from_name(name)
    - derive_sr25519_from_name(parts)
    - derive_secp256k1_from_name(name)
    - provision_identity(index): 派生完整的 NodeIdentity

内部方法：
    - _hard_derive_seed: ed25519 / secp256k1 的硬派生
"""

from __future__ import annotations

from typing import Sequence

import sr25519
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from loguru import logger

from src.testnet.errors import DerivationError
from .encoding import blake2_256, chain_code, scale_encode_str
from .schemas import NodeIdentity, Sr25519Keypair

INDEXED_NAMES = ("alice", "bob", "charlie", "dave", "ferdie")

# "bottom drive obey lake curtain smoke basket hold race lonely fit walk" 的 mini secret
DEV_SEED = bytes.fromhex("fac7959dbfe72f052e5a0c3c8d6530f202b02fd8f9f5ca3580ec8deb7797479e")

STASH_JUNCTION = "stash"


def canonical_name(index: int) -> str:
    """名称表是硬性容量上限，超出时直接失败，不回绕也不复用名称。"""
    if index < 0 or index >= len(INDEXED_NAMES):
        raise DerivationError(
            f"节点序号 {index} 超出身份名称表容量（最多 {len(INDEXED_NAMES)} 个中继链节点）"
        )
    return INDEXED_NAMES[index].title()


def generate_node_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


def _hard_derive_seed(domain: str, seed: bytes, junction: str) -> bytes:
    if len(seed) != 32:
        raise DerivationError(f"种子长度无效: {len(seed)}，应为 32 字节")
    return blake2_256(scale_encode_str(domain) + seed + chain_code(junction))


def derive_ed25519_from_name(name: str, seed: bytes = DEV_SEED) -> Ed25519PrivateKey:
    derived = _hard_derive_seed("Ed25519HDKD", seed, name)
    try:
        return Ed25519PrivateKey.from_private_bytes(derived)
    except ValueError as e:
        raise DerivationError(f"派生 ed25519 密钥失败 ({name}): {e}") from e


def derive_sr25519_from_name(parts: Sequence[str], seed: bytes = DEV_SEED) -> Sr25519Keypair:
    """依次对 parts 中的每一段做硬派生，例如 ["Alice", "stash"] 对应 //Alice//stash。"""
    if len(seed) != 32:
        raise DerivationError(f"种子长度无效: {len(seed)}，应为 32 字节")
    try:
        public, secret = sr25519.pair_from_seed(seed)
        for part in parts:
            _, public, secret = sr25519.hard_derive_keypair((chain_code(part), public, secret), b"")
    except Exception as e:
        raise DerivationError(f"派生 sr25519 密钥失败 ({'//'.join(parts)}): {e}") from e
    return Sr25519Keypair(public=bytes(public), secret=bytes(secret))


def derive_secp256k1_from_name(name: str, seed: bytes = DEV_SEED) -> ec.EllipticCurvePrivateKey:
    derived = _hard_derive_seed("Secp256k1HDKD", seed, name)
    try:
        return ec.derive_private_key(int.from_bytes(derived, "big"), ec.SECP256K1())
    except ValueError as e:
        raise DerivationError(f"派生 secp256k1 密钥失败 ({name}): {e}") from e


def provision_identity(index: int) -> NodeIdentity:
    """派生第 index 个中继链节点的身份。

    :raises DerivationError: 序号超出名称表或任一派生失败。
    """
    name = canonical_name(index)
    identity = NodeIdentity(
        index=index,
        canonical_name=name,
        node_key=generate_node_key(),
        ed25519_key=derive_ed25519_from_name(name),
        account_key=derive_sr25519_from_name([name]),
        stash_key=derive_sr25519_from_name([name, STASH_JUNCTION]),
        beefy_key=derive_secp256k1_from_name(name),
    )
    logger.debug(f"已派生节点身份 {name}: account={identity.account_address}, peer_id={identity.peer_id}")
    return identity
