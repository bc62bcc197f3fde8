"""
扫描 API

手动触发一轮网络扫描，查看本机参与扫描的网卡。
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import ScanCycleError
from ...models import NetworkInfo
from ...scanner import DiscoveryScanner
from ..dependencies import get_scanner, verify_admin_token

router = APIRouter(prefix="/api/scan", tags=["scan"])


@router.post("", dependencies=[Depends(verify_admin_token)])
async def scan_now(scanner: DiscoveryScanner = Depends(get_scanner)):
    """
    立即扫描

    与定时扫描串行执行，返回时本轮已经完成。
    """
    if not await scanner.scan_now():
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Network scan failed, see server logs"
        )
    return {
        "success": True,
        "message": "Network scan completed",
        "peer_count": len(scanner.registry),
        "last_scan": scanner.last_scan_time,
    }


@router.get("/networks", response_model=List[NetworkInfo])
async def list_networks(scanner: DiscoveryScanner = Depends(get_scanner)):
    """本机网卡及其子网（每轮扫描都会重新枚举）"""
    try:
        networks = scanner.get_local_network_info()
    except ScanCycleError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    return [
        NetworkInfo(
            name=n.name,
            local_address=n.local_address,
            netmask=n.netmask,
            base_address=n.subnet.base_address,
            prefix_length=n.subnet.prefix_length,
        )
        for n in networks
    ]
