"""
文件功能：
    对无类型嵌套文档（dict / list / 标量）按路径读写。

    创世文档的结构随链扩展字段而变化，无法用固定模型描述，因此保持为通用文档，
    由组合器按路径写入。

公开接口：
    - get_path(document, *path): 读取路径上的值
    - set_path(document, value, *path): 写入值，缺失的中间层以 dict 创建

路径段：str 用于 dict 的键，int 用于 list 的下标。类型不兼容时抛出 DocumentPathError，
错误信息中包含出错的路径段。
"""

from __future__ import annotations

from typing import Any, Union

from src.testnet.errors import DocumentPathError

Segment = Union[str, int]


def _describe(path: tuple, i: int) -> str:
    return "/".join(str(p) for p in path[: i + 1])


def _step(node: Any, segment: Segment, path: tuple, i: int, create: bool) -> Any:
    if isinstance(node, dict):
        if not isinstance(segment, str):
            raise DocumentPathError(
                f"路径段 {segment!r} ({_describe(path, i)}) 不能用于索引 dict，需要 str 键", segment
            )
        if segment not in node:
            if not create:
                raise DocumentPathError(f"路径段 {segment!r} ({_describe(path, i)}) 不存在", segment)
            node[segment] = {}
        return node[segment]
    if isinstance(node, list):
        if isinstance(segment, bool) or not isinstance(segment, int):
            raise DocumentPathError(
                f"路径段 {segment!r} ({_describe(path, i)}) 不能用于索引 list，需要 int 下标", segment
            )
        if not -len(node) <= segment < len(node):
            raise DocumentPathError(
                f"路径段 {segment!r} ({_describe(path, i)}) 越界，list 长度为 {len(node)}", segment
            )
        return node[segment]
    raise DocumentPathError(
        f"路径段 {segment!r} ({_describe(path, i)}) 无法进入 {type(node).__name__} 类型的值", segment
    )


def get_path(document: Any, *path: Segment) -> Any:
    node = document
    for i, segment in enumerate(path):
        node = _step(node, segment, path, i, create=False)
    return node


def set_path(document: Any, value: Any, *path: Segment) -> None:
    if not path:
        raise DocumentPathError("写入路径不能为空", None)
    node = document
    for i, segment in enumerate(path[:-1]):
        node = _step(node, segment, path, i, create=True)

    last = path[-1]
    i = len(path) - 1
    if isinstance(node, dict):
        if not isinstance(last, str):
            raise DocumentPathError(f"路径段 {last!r} ({_describe(path, i)}) 不能用于索引 dict，需要 str 键", last)
        node[last] = value
        return
    if isinstance(node, list):
        if isinstance(last, bool) or not isinstance(last, int):
            raise DocumentPathError(f"路径段 {last!r} ({_describe(path, i)}) 不能用于索引 list，需要 int 下标", last)
        if not -len(node) <= last < len(node):
            raise DocumentPathError(f"路径段 {last!r} ({_describe(path, i)}) 越界，list 长度为 {len(node)}", last)
        node[last] = value
        return
    raise DocumentPathError(f"路径段 {last!r} ({_describe(path, i)}) 无法写入 {type(node).__name__} 类型的值", last)
