"""
模板解析：将 {{name}} 占位符替换为凭证 / 变量的值。

查找顺序：credentials 优先，其次 variables。
未找到的占位符原样保留并记录警告，永不抛出异常。
"""

import logging
import re
from typing import Any

from connectivity.encryption import CredentialCipher

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")

# 长度超过该值且仅含 base64 字符的字符串被视为"可能已加密"
_ENCRYPTED_MIN_LENGTH = 20
_ENCRYPTED_CHARSET = re.compile(r"^[A-Za-z0-9+/=_-]+$")


def looks_encrypted(value: Any) -> bool:
    """
    启发式判断：base64 字符集 + 长度阈值。
    这是已知的近似判断（没有密文标记），误判时解密失败会回退为原值。
    """
    return (
        isinstance(value, str)
        and len(value) > _ENCRYPTED_MIN_LENGTH
        and _ENCRYPTED_CHARSET.match(value) is not None
    )


def has_template_variables(value: Any) -> bool:
    return isinstance(value, str) and "{{" in value


def extract_variables(template: Any) -> list[str]:
    """按出现顺序返回去重后的占位符名称。"""
    if not template or not isinstance(template, str):
        return []
    names: list[str] = []
    for match in PLACEHOLDER.finditer(template):
        name = match.group(1).strip()
        if name and name not in names:
            names.append(name)
    return names


def substitute(
    template: Any,
    credentials: dict[str, Any] | None = None,
    variables: dict[str, Any] | None = None,
    cipher: CredentialCipher | None = None,
    decrypt_values: bool = True,
) -> str:
    """
    解析模板字符串。

    Args:
        template: 含 {{name}} 占位符的模板
        credentials: 用户凭证（优先）
        variables: 配置变量
        cipher: 用于解密"看起来已加密"的值；为 None 时不解密
        decrypt_values: 是否尝试解密

    Returns:
        str: 替换后的字符串
    """
    if template is None:
        return ""
    template = str(template)

    if "{{" not in template:
        return template

    values = {**(variables or {}), **(credentials or {})}

    def replacer(match: re.Match) -> str:
        name = match.group(1).strip()
        if name not in values:
            logger.warning(f"模板变量未找到: {name}")
            return match.group(0)

        value = values[name]
        if decrypt_values and cipher is not None and looks_encrypted(value):
            value = cipher.decrypt(value)

        if value is None or value == "":
            return ""
        return str(value)

    return PLACEHOLDER.sub(replacer, template)
