"""
配置合并：字段定义中的默认值 + 集成级别的覆盖值。
覆盖值总是优先，包括显式的 False / 0 / 空字符串。
"""

from typing import Any, Mapping

from connectivity.models import FieldDescriptor


def _default_of(descriptor: Any) -> tuple[bool, Any]:
    if isinstance(descriptor, FieldDescriptor):
        return descriptor.has_default, descriptor.default
    if isinstance(descriptor, Mapping) and "default" in descriptor:
        return True, descriptor["default"]
    return False, None


def merge(field_defaults: Mapping[str, Any] | None, overrides: Mapping[str, Any] | None) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for name, descriptor in (field_defaults or {}).items():
        has_default, value = _default_of(descriptor)
        if has_default:
            merged[name] = value
    merged.update(overrides or {})
    return merged


def merge_test_config(master_test_config: Mapping[str, Any] | None, integration_test_config: Mapping[str, Any] | None) -> dict[str, Any]:
    """auth_types.yaml 的 test_config 默认值 + 集成 auth schema 中的 test_config。"""
    return merge(master_test_config, integration_test_config)


def merge_auth_config(master_config: Mapping[str, Any] | None, instance_config: Mapping[str, Any] | None) -> dict[str, Any]:
    """auth_types.yaml 的 config_options 默认值 + auth method 自身的 config。"""
    return merge(master_config, instance_config)
