"""
凭证加解密服务：基于 Fernet 的对称加密。
密钥从环境变量 ENCRYPTION_KEY 读取；非 Fernet 格式的口令会通过 SHA-256 派生为密钥。
"""

import base64
import hashlib
import json
import logging
import os
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

_DEFAULT_KEY = "default-encryption-key-change-in-production"


def _build_fernet(key: str | bytes) -> Fernet:
    """接受 Fernet 密钥或任意口令。"""
    key_bytes = key.encode("utf-8") if isinstance(key, str) else key
    try:
        return Fernet(key_bytes)
    except (ValueError, TypeError):
        derived = base64.urlsafe_b64encode(hashlib.sha256(key_bytes).digest())
        return Fernet(derived)


class CredentialCipher:
    """
    对称加解密。
    decrypt 对明文宽容：无法解密时原样返回输入，而不是抛出异常。
    """

    def __init__(self, key: str | bytes | None = None):
        if key is None:
            key = os.getenv("ENCRYPTION_KEY", _DEFAULT_KEY)
            if key == _DEFAULT_KEY:
                logger.warning("正在使用默认加密密钥，生产环境请设置 ENCRYPTION_KEY 环境变量")
        self._fernet = _build_fernet(key)

    def encrypt(self, data: Any) -> str:
        """加密字符串或可 JSON 序列化的对象。"""
        text = data if isinstance(data, str) else json.dumps(data)
        return self._fernet.encrypt(text.encode("utf-8")).decode("ascii")

    def try_decrypt(self, value: str) -> str | None:
        """解密失败时返回 None。"""
        try:
            return self._fernet.decrypt(value.encode("utf-8")).decode("utf-8")
        except (InvalidToken, ValueError, TypeError):
            return None

    def decrypt(self, value: Any) -> Any:
        """解密；非字符串或明文输入原样返回。"""
        if not isinstance(value, str) or not value:
            return value
        decrypted = self.try_decrypt(value)
        return value if decrypted is None else decrypted

    def encrypt_credentials(self, credentials: dict[str, Any]) -> str:
        if not isinstance(credentials, dict):
            raise TypeError("Credentials must be a dict")
        return self.encrypt(credentials)

    def decrypt_credentials(self, encrypted: str) -> dict[str, Any]:
        if not encrypted or not isinstance(encrypted, str):
            raise ValueError("Encrypted credentials must be a non-empty string")
        decrypted = self.try_decrypt(encrypted)
        if decrypted is None:
            raise ValueError("Failed to decrypt credentials")
        try:
            data = json.loads(decrypted)
        except json.JSONDecodeError as e:
            raise ValueError("Decrypted data is not a valid credentials object") from e
        if not isinstance(data, dict):
            raise ValueError("Decrypted data is not a valid credentials object")
        return data

    def verify_encryption(self, value: str) -> bool:
        """判断 value 能否用当前密钥解密。"""
        return isinstance(value, str) and self.try_decrypt(value) is not None

    @staticmethod
    def hash(data: str) -> str:
        """单向哈希（SHA-256 hex）。"""
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")
