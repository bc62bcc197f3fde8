"""
异常定义

- ValidationError: 地址/掩码等输入非法，调用方必须处理
- ScanCycleError: 单轮扫描的基础设施失败（ARP 命令缺失、无法枚举网卡）
- RefreshFailure: 拉取客户端数据失败（超时、网络错误、非 2xx、无法解析）

探测失败（主机不可达或不是客户端）不是异常，check_host 直接返回 False。
"""


class UsageAggregatorError(Exception):
    """所有自定义异常的基类"""


class ValidationError(UsageAggregatorError, ValueError):
    """输入校验失败"""


class ScanCycleError(UsageAggregatorError):
    """扫描周期失败（本轮中止，下一轮不受影响）"""


class RefreshFailure(UsageAggregatorError):
    """客户端数据拉取失败"""

    def __init__(self, ip: str, cause: Exception):
        super().__init__(f"Failed to refresh peer {ip}: {cause}")
        self.ip = ip
        self.cause = cause
