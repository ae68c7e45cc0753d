"""
连接存储：基于 TinyDB 的 Connection 文档持久化。
所有写操作都是按 connection_id 的单文档部分更新。
"""

import logging
import uuid
from pathlib import Path
from typing import Any

from tinydb import Query, TinyDB

from connectivity.config_loader import find_project_root
from connectivity.models import Connection, utc_now_iso

logger = logging.getLogger(__name__)

_DATA_DIR = find_project_root() / "data"


def new_connection_id() -> str:
    return f"conn_{uuid.uuid4().hex[:16]}"


class ConnectionStore:
    """TinyDB 连接表操作封装。"""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_path = _DATA_DIR / "connections.json"
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db = TinyDB(str(db_path), indent=2, ensure_ascii=False)
        self.table = self.db.table("connections")
        logger.info(f"TinyDB 数据库已打开: {db_path}")

    # ── 写入 ──────────────────────────────────────────

    def save_connection(self, connection: Connection) -> Connection:
        """创建或整体覆盖一个连接。"""
        now = utc_now_iso()
        if not connection.connection_id:
            connection = connection.model_copy(update={"connection_id": new_connection_id()})
        if not connection.created_at:
            connection = connection.model_copy(update={"created_at": now})
        connection = connection.model_copy(update={"updated_at": now})

        Conn = Query()
        self.table.upsert(connection.model_dump(mode="json"), Conn.connection_id == connection.connection_id)
        logger.debug(f"[{connection.connection_id}] 连接已保存")
        return connection

    def update_connection(self, connection_id: str, updates: dict[str, Any]) -> bool:
        """
        部分字段合并更新，并刷新 updated_at。
        返回是否找到了该连接。
        """
        doc = {**updates, "updated_at": utc_now_iso()}
        Conn = Query()
        updated = self.table.update(doc, Conn.connection_id == connection_id)
        if not updated:
            logger.warning(f"[{connection_id}] 更新失败：连接不存在")
            return False
        logger.debug(f"[{connection_id}] 连接已更新: {sorted(updates)}")
        return True

    def delete_connection(self, connection_id: str) -> bool:
        """软删除。"""
        return self.update_connection(connection_id, {"is_active": False, "status": "deleted"})

    # ── 查询 ──────────────────────────────────────────

    def get_connection(self, connection_id: str) -> Connection | None:
        Conn = Query()
        doc = self.table.get(Conn.connection_id == connection_id)
        return Connection.model_validate(dict(doc)) if doc else None

    def list_user_connections(self, user_id: str) -> list[Connection]:
        """获取用户的有效连接（按创建时间倒序）。"""
        Conn = Query()
        docs = self.table.search((Conn.user_id == user_id) & (Conn.is_active == True))  # noqa: E712
        docs.sort(key=lambda d: d.get("created_at") or "", reverse=True)
        return [Connection.model_validate(dict(d)) for d in docs]

    # ── 管理 ──────────────────────────────────────────

    def close(self):
        """关闭数据库。"""
        self.db.close()
