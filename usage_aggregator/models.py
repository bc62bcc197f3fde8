"""
数据模型定义

包括：
- 客户端协议模型（/status 响应）
- 规范化后的使用快照
- Peer（注册表中的客户端）
- API 响应模型
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# 客户端协议模型
# =============================================================================

class PeerStatus(BaseModel):
    """GET /status 响应"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    client_id: str = Field(..., alias="clientId", min_length=1)
    department: Optional[str] = None
    is_monitoring: bool = Field(default=False, alias="isMonitoring")

    # 只要求 clientId 非空，其余字段类型不对时降级处理而不是拒绝整个客户端
    @field_validator("client_id", mode="before")
    @classmethod
    def _coerce_client_id(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("department", mode="before")
    @classmethod
    def _coerce_department(cls, v: Any) -> Optional[str]:
        if isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return None

    @field_validator("is_monitoring", mode="before")
    @classmethod
    def _coerce_is_monitoring(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes", "on")
        return bool(v)


# =============================================================================
# 规范化使用快照
# =============================================================================

class ApplicationUsage(BaseModel):
    """单个应用的使用情况"""
    total_usage: float = 0
    last_used: Optional[str] = None
    sessions: List[Any] = Field(default_factory=list)
    cost: Optional[float] = None  # 客户端上报的月度成本，为空时按价格表估算


class PluginUsage(BaseModel):
    """单个插件的使用情况"""
    total_usage: float = 0
    last_used: Optional[str] = None
    sessions: List[Any] = Field(default_factory=list)
    cost: float = 25


class UsageSnapshot(BaseModel):
    """规范化后的快照：applications 按名称，plugins 按 厂商 -> 产品"""
    applications: Dict[str, ApplicationUsage] = Field(default_factory=dict)
    plugins: Dict[str, Dict[str, PluginUsage]] = Field(default_factory=dict)
    system_info: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None


# =============================================================================
# Peer
# =============================================================================

class Peer(BaseModel):
    """
    注册表中的客户端（以 IP 为键）

    不可变对象：注册表每次更新都整体替换，读取方不会看到部分更新的状态。
    """
    model_config = ConfigDict(frozen=True)

    ip: str
    client_id: str
    department: Optional[str] = None
    first_seen: datetime
    last_seen: datetime
    last_contact_ok: bool = True  # 最近一次探测/拉取是否成功
    is_manual: bool = False
    is_monitoring: bool = False
    latest_snapshot: Optional[Dict[str, Any]] = None
    last_update: Optional[datetime] = None

    def is_online(self, now: datetime, window: timedelta) -> bool:
        """在线 = 最近一次联系成功且 last_seen 在存活窗口内"""
        return self.last_contact_ok and (now - self.last_seen) <= window


# =============================================================================
# 聚合结果 / API 响应模型
# =============================================================================

class AggregatedStatistics(BaseModel):
    """全局统计（GET /api/statistics）"""
    total_clients: int = 0
    online_clients: int = 0
    unique_applications: int = 0
    unique_plugins: int = 0
    total_monthly_cost: float = 0
    potential_savings: float = 0
    last_scan: Optional[datetime] = None


class DepartmentSummary(BaseModel):
    """部门汇总"""
    department: str
    count: int = 0
    online: int = 0
    total_cost: float = 0
    applications: int = 0
    plugins: int = 0


class DepartmentCost(BaseModel):
    """部门成本（成本分析 / 月度汇总）"""
    name: str
    total_cost: float = 0
    active_licenses: int = 0
    unused_licenses: int = 0


class ExpenseItem(BaseModel):
    name: str
    cost: float
    is_active: bool
    client: str


class CostAnalysis(BaseModel):
    """成本分析（GET /api/cost-analysis）"""
    total_monthly_cost: float = 0
    total_annual_cost: float = 0
    active_licenses: int = 0
    unused_licenses: int = 0
    potential_savings: float = 0
    by_department: List[DepartmentCost] = Field(default_factory=list)
    top_expenses: List[ExpenseItem] = Field(default_factory=list)


class InventoryItem(BaseModel):
    """软件清单条目"""
    name: str
    vendor: Optional[str] = None
    installations: int = 0
    active_installations: int = 0
    total_usage: float = 0
    estimated_cost: float = 0


class SoftwareInventory(BaseModel):
    applications: List[InventoryItem] = Field(default_factory=list)
    plugins: List[InventoryItem] = Field(default_factory=list)


class PeerResponse(BaseModel):
    """客户端响应模型（GET /api/peers）"""
    client_id: str
    hostname: str
    department: str
    platform: str
    ip_address: str
    is_online: bool
    is_manual: bool = False
    first_seen: datetime
    last_seen: datetime
    latest_usage: Optional[UsageSnapshot] = None


class PeerDetailResponse(BaseModel):
    """单个客户端详情（含历史）"""
    client: PeerResponse
    latest_usage: Optional[UsageSnapshot] = None
    history: List[Any] = Field(default_factory=list)


class ManualPeerCreate(BaseModel):
    """手动添加客户端请求"""
    ip: str
    client_id: Optional[str] = None


class ManualPeerResult(BaseModel):
    ip: str
    verified: bool


class NetworkInfo(BaseModel):
    """本机参与扫描的网卡"""
    name: str
    local_address: str
    netmask: str
    base_address: str
    prefix_length: int


class AlertResponse(BaseModel):
    """告警响应模型"""
    id: int
    ts: str
    peer_id: str
    type: str
    subject: str = ""
    message: Optional[str] = None
    resolved: bool = False
