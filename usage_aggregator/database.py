"""
数据库操作抽象层

聚合结果的落库：
- historical_data: 客户端快照历史（只追加）
- cost_tracking: 月度部门成本汇总（按 (month, department) 覆盖写入）
- alerts: 告警（同一客户端、类型、对象只保留一条未处理告警）
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import get_config
from .utils import utc_now

SCHEMA = """
CREATE TABLE IF NOT EXISTS historical_data (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts TEXT NOT NULL,
    peer_id TEXT NOT NULL,
    department TEXT,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_historical_peer_ts ON historical_data(peer_id, ts DESC);

CREATE TABLE IF NOT EXISTS cost_tracking (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    month TEXT NOT NULL,
    department TEXT NOT NULL,
    total_cost REAL DEFAULT 0,
    active_licenses INTEGER DEFAULT 0,
    unused_licenses INTEGER DEFAULT 0,
    updated_at TEXT,
    UNIQUE (month, department)
);

CREATE TABLE IF NOT EXISTS alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts TEXT NOT NULL,
    peer_id TEXT NOT NULL,
    type TEXT NOT NULL,
    subject TEXT NOT NULL DEFAULT '',
    message TEXT,
    resolved INTEGER DEFAULT 0,
    resolved_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_alerts_open
    ON alerts(peer_id, type, subject) WHERE resolved = 0;
"""

TS_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class AggregationStore:
    """聚合结果存储"""

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[int] = None):
        """
        Args:
            db_path: 数据库文件路径，不指定则从配置加载
            timeout: SQLite 锁等待超时（秒）
        """
        if db_path is None or timeout is None:
            config = get_config()
            db_path = db_path or config.database.path
            timeout = timeout or config.database.timeout

        self.db_path = Path(db_path)
        self.timeout = timeout

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        使用方式：
            with store.get_conn() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self):
        with self.get_conn() as conn:
            conn.executescript(SCHEMA)

    # =========================================================================
    # 历史快照
    # =========================================================================

    def append_historical_snapshot(self, peer_id: str, department: Optional[str], snapshot: Dict[str, Any]) -> int:
        """追加一条快照历史，返回记录 ID"""
        with self.get_conn() as conn:
            cursor = conn.execute("""
                INSERT INTO historical_data (ts, peer_id, department, data)
                VALUES (?, ?, ?, ?)
            """, (utc_now().strftime(TS_FORMAT), peer_id, department, json.dumps(snapshot, default=str)))
            return cursor.lastrowid

    def list_historical_snapshots(self, peer_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """查询快照历史（最新的在前）"""
        sql = "SELECT id, ts, peer_id, department, data FROM historical_data"
        params: List[Any] = []
        if peer_id is not None:
            sql += " WHERE peer_id = ?"
            params.append(peer_id)
        sql += " ORDER BY ts DESC, id DESC LIMIT ?"
        params.append(limit)

        with self.get_conn() as conn:
            rows = conn.execute(sql, params).fetchall()

        result = []
        for row in rows:
            item = dict(row)
            item["data"] = json.loads(item["data"])
            result.append(item)
        return result

    # =========================================================================
    # 月度成本汇总
    # =========================================================================

    def upsert_monthly_cost_rollup(self, month: str, department: str, totals: Dict[str, Any]):
        """
        写入 (month, department) 的成本汇总，已存在则覆盖

        Args:
            month: YYYY-MM
            department: 部门名
            totals: {total_cost, active_licenses, unused_licenses}
        """
        with self.get_conn() as conn:
            conn.execute("""
                INSERT INTO cost_tracking (month, department, total_cost, active_licenses, unused_licenses, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(month, department) DO UPDATE SET
                    total_cost = excluded.total_cost,
                    active_licenses = excluded.active_licenses,
                    unused_licenses = excluded.unused_licenses,
                    updated_at = excluded.updated_at
            """, (
                month,
                department,
                totals.get("total_cost", 0),
                totals.get("active_licenses", 0),
                totals.get("unused_licenses", 0),
                utc_now().strftime(TS_FORMAT),
            ))

    def list_cost_rollups(self, month: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = """
            SELECT month, department, total_cost, active_licenses, unused_licenses, updated_at
            FROM cost_tracking
        """
        params: List[Any] = []
        if month is not None:
            sql += " WHERE month = ?"
            params.append(month)
        sql += " ORDER BY month DESC, department"

        with self.get_conn() as conn:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]

    # =========================================================================
    # 告警
    # =========================================================================

    def insert_alert_if_absent(self, peer_id: str, alert_type: str, message: str, subject: str = "") -> int:
        """
        插入告警（已有同一 (peer_id, type, subject) 的未处理告警时跳过）

        Returns:
            告警 ID（跳过时返回 0）
        """
        with self.get_conn() as conn:
            # 检查和插入在同一个写事务中完成
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute("""
                SELECT id FROM alerts
                WHERE peer_id = ? AND type = ? AND subject = ? AND resolved = 0
                LIMIT 1
            """, (peer_id, alert_type, subject))

            if cursor.fetchone():
                return 0

            cursor = conn.execute("""
                INSERT INTO alerts (ts, peer_id, type, subject, message)
                VALUES (?, ?, ?, ?, ?)
            """, (utc_now().strftime(TS_FORMAT), peer_id, alert_type, subject, message))
            return cursor.lastrowid

    def list_alerts(self, resolved: Optional[bool] = None, limit: int = 200) -> List[Dict[str, Any]]:
        """查询告警（最新的在前）"""
        sql = "SELECT id, ts, peer_id, type, subject, message, resolved FROM alerts"
        params: List[Any] = []
        if resolved is not None:
            sql += " WHERE resolved = ?"
            params.append(1 if resolved else 0)
        sql += " ORDER BY ts DESC, id DESC LIMIT ?"
        params.append(limit)

        with self.get_conn() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [{**dict(row), "resolved": bool(row["resolved"])} for row in rows]

    def count_open_alerts(self) -> int:
        with self.get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM alerts WHERE resolved = 0").fetchone()[0]

    def resolve_alert(self, alert_id: int) -> bool:
        """
        标记告警已处理

        Returns:
            是否存在该未处理告警
        """
        with self.get_conn() as conn:
            cursor = conn.execute(
                "UPDATE alerts SET resolved = 1, resolved_at = ? WHERE id = ? AND resolved = 0",
                (utc_now().strftime(TS_FORMAT), alert_id)
            )
            return cursor.rowcount > 0

    # =========================================================================
    # 数据清理
    # =========================================================================

    def cleanup_old_data(self, retention_days: int = 90):
        """
        清理过期数据

        只清理快照历史和已处理的告警；未处理告警和成本汇总保留。

        Args:
            retention_days: 保留天数
        """
        cutoff = (utc_now() - timedelta(days=retention_days)).strftime(TS_FORMAT)

        with self.get_conn() as conn:
            conn.execute("DELETE FROM historical_data WHERE ts < ?", (cutoff,))
            conn.execute("DELETE FROM alerts WHERE resolved = 1 AND ts < ?", (cutoff,))


# 全局数据库实例（延迟加载）
_db: Optional[AggregationStore] = None


def get_db() -> AggregationStore:
    """获取全局数据库实例"""
    global _db
    if _db is None:
        _db = AggregationStore()
        _db.init_schema()
    return _db


def set_db(store: AggregationStore):
    global _db
    _db = store


def reset_db():
    """重置数据库实例（主要用于测试）"""
    global _db
    _db = None
