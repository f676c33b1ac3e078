"""容器名与主机名的规整工具。"""

from __future__ import annotations

import os
import random
import re
import string

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")

# docker 主机名长度上限
MAX_HOSTNAME_LENGTH = 64


def sanitize_container_name(name: str) -> str:
    """将名称中 docker 不接受的字符替换为下划线。"""
    return _INVALID_NAME_CHARS.sub("_", name)


def condense_host_name(name: str) -> str:
    """超过 64 字符的主机名保留首尾各 30 个字符，中间以 _._ 连接。"""
    if len(name) <= MAX_HOSTNAME_LENGTH:
        return name
    return name[:30] + "_._" + name[-30:]


def rand_lower_case_letter_string(length: int) -> str:
    return "".join(random.choice(string.ascii_lowercase) for _ in range(length))


def docker_user_string() -> str:
    """当前进程的 uid:gid，中继器容器以该身份运行以便宿主机可读写 home 目录。"""
    return f"{os.getuid()}:{os.getgid()}"
