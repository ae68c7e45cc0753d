"""
配置加载器：将 auth_types.yaml 解析为只读的鉴权类型目录。
"""

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

import yaml

from connectivity.models import AuthTypeDefinition

logger = logging.getLogger(__name__)

_AUTH_TYPES_FILE = "auth_types.yaml"


def find_project_root() -> Path:
    return Path(os.getenv("INTEGRATION_CONNECT_ROOT", "."))


def find_config_root() -> Path:
    """Find the config directory (falls back to the project root)."""
    base = find_project_root()
    config_dir = base / "config"
    if config_dir.is_dir():
        return config_dir
    return base


def load_yaml(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fp:
        return yaml.safe_load(fp)


class AuthTypeCatalog:
    """
    scheme key → AuthTypeDefinition。
    启动时加载一次，之后只读。
    """

    def __init__(self, definitions: Mapping[str, AuthTypeDefinition]):
        self._definitions: Mapping[str, AuthTypeDefinition] = MappingProxyType(dict(definitions))

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AuthTypeCatalog":
        auth_types = (raw or {}).get("auth_types") or {}
        definitions = {}
        for key, body in auth_types.items():
            definitions[key] = AuthTypeDefinition.model_validate({**(body or {}), "key": key})
        return cls(definitions)

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "AuthTypeCatalog":
        if path is None:
            path = find_config_root() / _AUTH_TYPES_FILE
        path = Path(path)
        if not path.exists():
            logger.warning(f"鉴权类型定义文件不存在: {path}")
            return cls({})
        catalog = cls.from_dict(load_yaml(path))
        logger.info(f"已加载 {len(catalog)} 个鉴权类型定义: {path}")
        return catalog

    def get(self, auth_type: Optional[str]) -> Optional[AuthTypeDefinition]:
        if not auth_type:
            return None
        return self._definitions.get(auth_type)

    def all(self) -> list[AuthTypeDefinition]:
        return list(self._definitions.values())

    def __contains__(self, auth_type: str) -> bool:
        return auth_type in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)
