"""
告警 API

提供告警查询和处理。
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...database import AggregationStore
from ...models import AlertResponse
from ..dependencies import get_database, verify_admin_token

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("", response_model=List[AlertResponse])
async def list_alerts(
    resolved: Optional[bool] = Query(None, description="按是否已处理过滤"),
    limit: int = Query(200, ge=1, le=1000, description="返回数量限制"),
    db: AggregationStore = Depends(get_database)
):
    """
    获取告警

    按时间倒序排列。
    """
    return [AlertResponse(**a) for a in db.list_alerts(resolved=resolved, limit=limit)]


@router.post("/{alert_id}/resolve", dependencies=[Depends(verify_admin_token)])
async def resolve_alert(alert_id: int, db: AggregationStore = Depends(get_database)):
    """标记告警已处理"""
    if not db.resolve_alert(alert_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Open alert {alert_id} not found"
        )
    return {"success": True, "id": alert_id}
