"""
客户端 API

提供已发现客户端的查询，以及手动添加 / 移除。
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...aggregator import AggregationClient
from ...errors import ValidationError
from ...models import ManualPeerCreate, ManualPeerResult, PeerDetailResponse, PeerResponse
from ...scanner import DiscoveryScanner
from ..dependencies import get_aggregation_client, get_scanner, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["peers"])


@router.get("/peers", response_model=List[PeerResponse])
async def list_peers(client: AggregationClient = Depends(get_aggregation_client)):
    """
    获取所有客户端

    包含离线客户端，latest_usage 为规范化后的最后一次快照。
    """
    return await client.get_all_peers()


@router.get("/peers/{ip}", response_model=PeerResponse)
async def get_peer(ip: str, client: AggregationClient = Depends(get_aggregation_client)):
    """按 IP 获取单个客户端"""
    peer = await client.get_peer(ip)
    if peer is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Peer {ip} not found"
        )
    return peer


@router.post(
    "/peers",
    response_model=ManualPeerResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_admin_token)]
)
async def add_peer(data: ManualPeerCreate, scanner: DiscoveryScanner = Depends(get_scanner)):
    """
    手动添加客户端

    先尝试验证；验证失败仍然加入列表（离线、手动标记）。
    """
    try:
        verified = await scanner.add_manual_peer(data.ip, data.client_id)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    logger.info(f"Manual peer {data.ip} added (verified={verified})")
    return ManualPeerResult(ip=data.ip, verified=verified)


@router.delete(
    "/peers/{ip}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_admin_token)]
)
async def remove_peer(ip: str, scanner: DiscoveryScanner = Depends(get_scanner)):
    """移除客户端"""
    if not await scanner.remove_peer(ip):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Peer {ip} not found"
        )


@router.get("/clients/{client_id}", response_model=PeerDetailResponse)
async def get_client_detail(client_id: str, client: AggregationClient = Depends(get_aggregation_client)):
    """
    按 clientId 获取客户端详情

    会先拉取一次最新快照，并附带最近几天的历史。
    """
    detail = await client.get_client_detail(client_id)
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Client {client_id} not found"
        )
    return detail
