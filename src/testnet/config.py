"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.parse_test_modes: 将字符串/JSON 解析为 ModeSwitch 集合
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Annotated, Any, Dict, List, Set, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, PydanticBaseSettingsSource

from src.testnet.chain.schemas import ChainConfig, DockerImage, ModeSwitch, ParachainConfig


def _default_relay_chain() -> ChainConfig:
    return ChainConfig(
        type="polkadot",
        name="polkadot",
        chain_id="rococo-local",
        images=[
            DockerImage(
                repository="ghcr.io/strangelove-ventures/heighliner/polkadot",
                version="v0.9.19",
                uid_gid="1025:1025",
            )
        ],
        bin="polkadot",
        bech32_prefix="",
        denom="uDOT",
        gas_prices="",
        gas_adjustment=0,
        trusting_period="",
    )


class Config(BaseSettings):
    docker_bin: str = "docker"
    helper_image: str = "busybox:stable"
    docker_network: str = "testnet"
    test_name: str = "testnet"

    relay_chain: ChainConfig = _default_relay_chain()
    num_relay_chain_nodes: int = 3
    parachains: List[ParachainConfig] = []

    relayer_image: str = "ghcr.io/cosmos/relayer"
    relayer_version: str = "v2.0.0-beta4"
    relayer_home: str = str(Path.cwd() / "relayer-home")

    job_log_tail: int = 50
    stop_timeout_s: int = 30
    max_parallel_tasks: int = 16
    # NoDecode：交给 parse_test_modes 处理逗号分隔的写法
    test_modes: Annotated[Set[ModeSwitch], NoDecode] = set()

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("test_modes", mode="before")
    @classmethod
    def parse_test_modes(cls, value: Any) -> Any:
        """支持从环境变量以 JSON 或分隔符（逗号/分号/空白）解析 test_modes。"""
        if value is None or value == "":
            return set()
        if isinstance(value, str):
            text = value.strip()
            # 优先尝试 JSON
            try:
                loaded = json.loads(text)
                if isinstance(loaded, list):
                    return [str(v).lower() for v in loaded]
            except json.JSONDecodeError:
                pass
            # 回退为分隔符拆分（, ; 空白）
            return [p.lower() for p in re.split(r"[\s,;]+", text) if p]
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 config.json（或 CONFIG_FILE 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                cfg_path = os.environ.get("CONFIG_FILE")
                path = Path(cfg_path) if cfg_path else Path.cwd() / "config.json"
                if not path.exists():
                    self._data = {}
                    return
                try:
                    with path.open("r", encoding="utf-8") as f:
                        data = json.load(f)
                    self._data = data if isinstance(data, dict) else {}
                except (OSError, json.JSONDecodeError):
                    self._data = {}

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按键名/别名返回字段值。"""
                self._load()
                data = self._data or {}
                key_alias = getattr(field, "alias", None) or field_name
                if key_alias in data:
                    return data[key_alias], key_alias, True
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


config = Config()
