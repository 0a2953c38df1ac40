from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class BridgeConfig:
    host: str = "localhost"
    port: int = 9080
    timeout_ms: int = 10000
    connect_timeout_ms: int = 10000

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def connect_timeout(self) -> float:
        return self.connect_timeout_ms / 1000.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: str | None = None


@dataclass(frozen=True)
class AppConfig:
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_config() -> AppConfig:
    config_path = os.getenv("GODOT_MCP_CONFIG")
    if not config_path:
        return AppConfig()

    path = Path(config_path)
    if not path.exists():
        return AppConfig()

    raw = _load_json(path)
    bridge_raw = raw.get("bridge", {})
    logging_raw = raw.get("logging", {})
    timeout_ms = int(bridge_raw.get("timeout_ms", 10000))
    return AppConfig(
        bridge=BridgeConfig(
            host=str(bridge_raw.get("host", "localhost")),
            port=int(bridge_raw.get("port", 9080)),
            timeout_ms=timeout_ms,
            # connect attempts share the command timeout unless told otherwise
            connect_timeout_ms=int(bridge_raw.get("connect_timeout_ms", timeout_ms)),
        ),
        logging=LoggingConfig(
            level=str(logging_raw.get("level", "INFO")),
            file=logging_raw.get("file"),
        ),
    )
