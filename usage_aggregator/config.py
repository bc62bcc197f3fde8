"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖
（前缀 USAGE_AGG_，嵌套字段用 "__" 分隔，如 USAGE_AGG_DISCOVERY__CLIENT_PORT）。
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 常见商业软件月度授权价格（美元），未列出的按 default_application_cost 计
DEFAULT_APPLICATION_COSTS: Dict[str, float] = {
    "Adobe After Effects": 55,
    "Adobe Premiere Pro": 55,
    "Adobe Photoshop": 35,
    "Adobe Illustrator": 35,
    "Cinema 4D": 94,
    "Rhinoceros": 195,
    "3ds Max": 215,
    "Autodesk Maya": 215,
    "DaVinci Resolve": 295,
    "Nuke": 499,
    "Houdini": 269,
    "Blender": 0,
    "Unity Editor": 150,
    "Unreal Engine": 0,
}


class DiscoveryConfig(BaseModel):
    """网络发现配置"""
    scan_interval_ms: int = 300000
    client_port: int = 9876
    connect_timeout: float = 2.0
    http_timeout: float = 5.0
    discovery_key: str = "internal-scanner"
    path_prefix: str = ""  # 旧版客户端使用 "/api"
    subnet_batch_size: int = Field(default=50, ge=1, le=50)
    max_concurrency: int = Field(default=50, ge=1)
    arp_timeout: float = 10.0

    @property
    def scan_interval(self) -> float:
        """扫描间隔（秒）"""
        return self.scan_interval_ms / 1000.0


class AggregationConfig(BaseModel):
    """聚合与告警阈值"""
    liveness_window_minutes: int = 10
    activity_window_days: int = 30
    offline_alert_minutes: int = 30
    high_memory_pct: float = 90.0
    unused_software_min_cost: float = 100.0
    history_days: int = 7


class CostConfig(BaseModel):
    """成本估算配置"""
    default_application_cost: float = 50.0
    default_plugin_cost: float = 25.0
    applications: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_APPLICATION_COSTS))

    def application_cost(self, name: str) -> float:
        return self.applications.get(name, self.default_application_cost)


class DatabaseConfig(BaseModel):
    """数据库配置"""
    path: str = "data/usage-aggregator.db"
    timeout: int = 30


class RetentionConfig(BaseModel):
    """数据保留策略"""
    days: int = 90
    cleanup_hour: int = 3


class APIConfig(BaseModel):
    """API 服务配置"""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3443
    cors_origins: List[str] = ["http://localhost:3443", "http://127.0.0.1:3443"]
    admin_token: str = "CHANGE_ME_IN_PRODUCTION"


class PeerServiceConfig(BaseModel):
    """被扫描端服务配置（对其他实例暴露 /status、/latest）"""
    enabled: bool = True
    host: str = "0.0.0.0"
    client_id: Optional[str] = None  # 为空时使用主机名
    department: Optional[str] = None
    usage_file: str = "data/usage.json"


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseSettings):
    """应用配置（完整配置）"""
    model_config = SettingsConfigDict(
        env_prefix="USAGE_AGG_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    costs: CostConfig = Field(default_factory=CostConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    peer_service: PeerServiceConfig = Field(default_factory=PeerServiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 USAGE_AGGREGATOR_CONFIG
    3. 当前目录下的 config.yaml
    """
    if config_path is None:
        config_path = os.environ.get("USAGE_AGGREGATOR_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
            if raw_config:
                # 配置文件中的相对路径以配置文件所在目录为基准
                base_dir = config_file.resolve().parent

                def _resolve_path(value: Optional[str]) -> Optional[str]:
                    if not value:
                        return value
                    path = Path(value)
                    if path.is_absolute():
                        return str(path)
                    return str((base_dir / path).resolve())

                for section, key in (
                    ("database", "path"),
                    ("logging", "file"),
                    ("peer_service", "usage_file"),
                ):
                    section_data = raw_config.get(section) or {}
                    if section_data.get(key):
                        section_data[key] = _resolve_path(section_data[key])

                return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig):
    """替换全局配置（命令行指定配置文件或测试时使用）"""
    global _config
    _config = config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
