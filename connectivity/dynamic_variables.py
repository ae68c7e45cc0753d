"""
动态变量校验：auth method 中 URL 类配置项引用的 {{var}} 必须在 additional_fields 中有定义。

在管理员编辑集成 auth schema 时调用，给出 "did you mean" 建议。
"""

import copy
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from connectivity.templating import PLACEHOLDER, extract_variables

# 可能包含动态变量的配置项
URL_FIELDS = [
    "authorization_url",
    "token_url",
    "refresh_token_url",
    "base_url",
    "webhook_url",
    "revoke_url",
    "user_info_url",
    "jwks_url",
]


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    return obj if isinstance(obj, dict) else {}


def extract_variables_from_auth_method(auth_method: Any) -> Dict[str, List[str]]:
    """变量名 → 引用它的配置项列表。"""
    method = _as_dict(auth_method)
    config = method.get("config") or {}
    usage: Dict[str, List[str]] = {}
    for field in URL_FIELDS:
        for name in extract_variables(config.get(field)):
            usage.setdefault(name, []).append(field)
    return usage


def get_available_fields(additional_fields: Any) -> List[str]:
    if not isinstance(additional_fields, list):
        return []
    names = []
    for field in additional_fields:
        field = _as_dict(field)
        if field.get("name"):
            names.append(field["name"])
    return names


def find_similar_field(variable: str, available_fields: List[str]) -> Optional[str]:
    """按大小写无关的相等 / 包含关系寻找相近的字段名。"""
    if not variable or not available_fields:
        return None
    lowered = variable.lower()

    for field in available_fields:
        if field.lower() == lowered and field != variable:
            return field
    for field in available_fields:
        if lowered in field.lower():
            return field
    for field in available_fields:
        if field.lower() in lowered:
            return field
    return None


def validate_dynamic_variables(auth_method: Any) -> Dict[str, Any]:
    result: Dict[str, Any] = {"valid": True, "errors": []}
    method = _as_dict(auth_method)
    if not method.get("config"):
        return result

    usage = extract_variables_from_auth_method(method)
    available = get_available_fields(method.get("additional_fields") or [])

    for variable, used_in in usage.items():
        if variable in available:
            continue
        message = f"Invalid dynamic variable '{{{{{variable}}}}}' found in: {', '.join(used_in)}."
        if not available:
            message += " No fields are defined in additional_fields."
        else:
            message += f" Available fields: {', '.join(available)}"
            suggestion = find_similar_field(variable, available)
            if suggestion:
                message += f". Did you mean '{{{{{suggestion}}}}}'?"

        result["errors"].append({"variable": variable, "used_in": used_in, "message": message})
        result["valid"] = False

    return result


def validate_auth_schema(auth_schema: Any) -> Dict[str, Any]:
    """校验 auth schema 中所有 auth method 的动态变量。"""
    result: Dict[str, Any] = {"valid": True, "errors": []}
    schema = _as_dict(auth_schema)
    auth_methods = schema.get("auth_methods")

    if not isinstance(auth_methods, list):
        result["errors"].append({"message": "Invalid auth schema: auth_methods list is missing"})
        result["valid"] = False
        return result

    for index, auth_method in enumerate(auth_methods):
        validation = validate_dynamic_variables(auth_method)
        if validation["valid"]:
            continue
        method = _as_dict(auth_method)
        for error in validation["errors"]:
            result["errors"].append({
                "auth_method_index": index,
                "auth_method_label": method.get("label") or method.get("auth_type"),
                **error,
            })
        result["valid"] = False

    return result


def replace_dynamic_variables(value: Any, values: Optional[Dict[str, Any]], strict: bool = False) -> Any:
    """
    替换字符串中的 {{var}}。

    strict=False: 缺失的变量替换为空字符串。
    strict=True: 缺失的变量保留原样，并在最后抛出 ValueError。
    """
    if not value or not isinstance(value, str):
        return value
    if not isinstance(values, dict):
        if strict:
            raise ValueError("Values dict is required for variable replacement")
        return value

    missing: List[str] = []

    def replacer(match) -> str:
        name = match.group(1).strip()
        current = values.get(name)
        if current is None:
            missing.append(name)
            return match.group(0) if strict else ""
        return str(current)

    result = PLACEHOLDER.sub(replacer, value)
    if strict and missing:
        raise ValueError(f"Missing values for dynamic variables: {', '.join(missing)}")
    return result


def replace_variables_in_auth_method(auth_method: Any, values: Dict[str, Any], strict: bool = False) -> Dict[str, Any]:
    """返回替换了 URL 类配置项后的 auth method 副本。"""
    method = copy.deepcopy(_as_dict(auth_method))
    config = method.get("config")
    if not config:
        return method
    for field in URL_FIELDS:
        if config.get(field):
            config[field] = replace_dynamic_variables(config[field], values, strict)
    return method


def get_variables_summary(auth_method: Any) -> Dict[str, Any]:
    method = _as_dict(auth_method)
    usage = extract_variables_from_auth_method(method)
    available = get_available_fields(method.get("additional_fields") or [])
    return {
        "total_variables_used": len(usage),
        "total_fields_defined": len(available),
        "variables": [
            {"name": name, "used_in": used_in, "is_defined": name in available}
            for name, used_in in usage.items()
        ],
        "unused_fields": [f for f in available if f not in usage],
        "undefined_variables": [v for v in usage if v not in available],
    }
