"""
集成 auth schema 管理：读写 config/integrations/ 下的 YAML 文件。
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from connectivity.config_loader import find_config_root, load_yaml
from connectivity.dynamic_variables import validate_auth_schema
from connectivity.errors import ValidationError
from connectivity.models import IntegrationAuthSchema

logger = logging.getLogger(__name__)


class IntegrationSchemaStore:
    """按 integration_id 管理集成的 auth schema 文件。"""

    def __init__(self, config_root: Optional[str | Path] = None):
        if config_root:
            self.config_root = Path(config_root)
        else:
            self.config_root = find_config_root()

        self.integrations_dir = self.config_root / "integrations"
        self.integrations_dir.mkdir(parents=True, exist_ok=True)

    def _iter_files(self) -> List[Path]:
        files = list(self.integrations_dir.glob("*.yaml")) + list(self.integrations_dir.glob("*.yml"))
        return sorted(files)

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            content = load_yaml(path)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"读取集成配置失败 {path}: {e}")
            return None
        return content if isinstance(content, dict) else None

    def _find_file(self, integration_id: str) -> Optional[Path]:
        """根据 integration_id 查找对应的文件路径。"""
        for path in self._iter_files():
            content = self._read(path)
            if content and content.get("integration_id") == integration_id:
                return path
        return None

    def list_integrations(self) -> List[str]:
        """列出所有集成 ID。"""
        ids = []
        for path in self._iter_files():
            content = self._read(path)
            if content and content.get("integration_id"):
                ids.append(content["integration_id"])
        return ids

    def get_auth_schema(self, integration_id: str) -> Optional[IntegrationAuthSchema]:
        path = self._find_file(integration_id)
        if path is None:
            return None
        return IntegrationAuthSchema.model_validate(self._read(path))

    def save_auth_schema(self, integration_id: str, schema: Dict[str, Any]) -> IntegrationAuthSchema:
        """
        校验并保存 auth schema。
        动态变量校验失败时抛出 ValidationError，文件不会被写入。
        """
        validation = validate_auth_schema(schema)
        if not validation["valid"]:
            messages = "; ".join(err["message"] for err in validation["errors"])
            raise ValidationError(f"Invalid dynamic variables in authentication configuration: {messages}")

        parsed = IntegrationAuthSchema.model_validate({**schema, "integration_id": integration_id})
        path = self._find_file(integration_id) or self.integrations_dir / f"{integration_id}.yaml"
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(parsed.model_dump(mode="json"), f, allow_unicode=True, sort_keys=False)
        logger.info(f"[{integration_id}] auth schema 已保存: {path}")
        return parsed
