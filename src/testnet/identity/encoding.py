"""
文件功能：
    Substrate / libp2p 相关的编码工具。

公开接口：
    - blake2_256(data): 32 字节 blake2b 摘要
    - scale_encode_str(text): SCALE 编码的字符串（紧凑长度前缀 + UTF-8）
    - chain_code(junction): 硬派生路径段对应的 32 字节 chain code
    - ss58_encode(public_key, prefix): SS58 地址
    - peer_id_from_ed25519(public_key): libp2p PeerId（base58）
"""

from __future__ import annotations

import hashlib

import base58

SS58_PREFIX = 42
_SS58_CHECKSUM_PREFIX = b"SS58PRE"

# libp2p protobuf: KeyType=Ed25519(1), Data=<32 bytes>
_LIBP2P_ED25519_KEY_HEADER = bytes([0x08, 0x01, 0x12, 0x20])
_MULTIHASH_IDENTITY = 0x00


def blake2_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def _compact_len(length: int) -> bytes:
    if length < 1 << 6:
        return bytes([length << 2])
    if length < 1 << 14:
        return ((length << 2) | 0b01).to_bytes(2, "little")
    if length < 1 << 30:
        return ((length << 2) | 0b10).to_bytes(4, "little")
    raise ValueError(f"字符串过长，无法进行 SCALE 编码: {length}")


def scale_encode_str(text: str) -> bytes:
    raw = text.encode("utf-8")
    return _compact_len(len(raw)) + raw


def chain_code(junction: str) -> bytes:
    """编码后不超过 32 字节时右侧补零，否则取其 blake2_256。"""
    encoded = scale_encode_str(junction)
    if len(encoded) > 32:
        return blake2_256(encoded)
    return encoded.ljust(32, b"\x00")


def ss58_encode(public_key: bytes, prefix: int = SS58_PREFIX) -> str:
    """SS58 编码。仅支持单字节前缀（0..63），测试网使用通用前缀 42。"""
    if not 0 <= prefix < 64:
        raise ValueError(f"不支持的 SS58 前缀: {prefix}")
    if len(public_key) not in (32, 33):
        raise ValueError(f"公钥长度无效: {len(public_key)}")
    payload = bytes([prefix]) + public_key
    checksum = hashlib.blake2b(_SS58_CHECKSUM_PREFIX + payload, digest_size=64).digest()[:2]
    return base58.b58encode(payload + checksum).decode("ascii")


def peer_id_from_ed25519(public_key: bytes) -> str:
    """ed25519 公钥的 protobuf 编码不超过 42 字节，PeerId 使用 identity multihash。"""
    encoded_key = _LIBP2P_ED25519_KEY_HEADER + public_key
    multihash = bytes([_MULTIHASH_IDENTITY, len(encoded_key)]) + encoded_key
    return base58.b58encode(multihash).decode("ascii")
