"""
Usage Aggregator - 局域网客户端发现与使用量聚合服务

负责：
- 定时扫描本地网络（ARP 表 + 子网兜底探测）发现其他客户端实例
- 拉取各客户端最新使用快照并维护在线状态
- 计算全局统计、部门汇总、成本分析
- 周期性写入历史快照、月度成本汇总并生成告警
- 提供 REST API 给前端，同时作为被扫描端对外提供 /status、/latest
"""

__version__ = "1.0.0"
__author__ = "AI-B"
