"""
统计 API

全局统计、部门汇总、成本分析、软件清单，全部按当前注册表实时计算。
"""

from typing import List

from fastapi import APIRouter, Depends

from ...aggregator import AggregationClient
from ...models import AggregatedStatistics, CostAnalysis, DepartmentSummary, SoftwareInventory
from ..dependencies import get_aggregation_client

router = APIRouter(prefix="/api", tags=["statistics"])


@router.get("/statistics", response_model=AggregatedStatistics)
async def get_statistics(client: AggregationClient = Depends(get_aggregation_client)):
    return await client.get_statistics()


@router.get("/departments", response_model=List[DepartmentSummary])
async def get_departments(client: AggregationClient = Depends(get_aggregation_client)):
    """按部门汇总（客户端数、在线数、成本、去重后的应用/插件数）"""
    return await client.get_departments()


@router.get("/cost-analysis", response_model=CostAnalysis)
async def get_cost_analysis(client: AggregationClient = Depends(get_aggregation_client)):
    return await client.get_cost_analysis()


@router.get("/software-inventory", response_model=SoftwareInventory)
async def get_software_inventory(client: AggregationClient = Depends(get_aggregation_client)):
    return await client.get_inventory()
