"""
文件功能：
    测试网管理的 FastAPI 路由：暴露网络状态查询与手动启动接口。

公开接口：
    - GET /network/status -> NetworkStatus
    - POST /network/ensure-started -> NetworkStatus

内部方法：
    无
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from src.testnet.errors import TestnetError
from .schemas import NetworkStatus
from . import services


router = APIRouter(prefix="/network", tags=["Testnet"])


@router.get("/status", response_model=NetworkStatus)
def get_status() -> NetworkStatus:
    """获取网络状态。"""
    return services.status()


@router.post("/ensure-started", response_model=NetworkStatus)
def post_ensure_started() -> NetworkStatus:
    """确保网络已初始化并启动。启动过程阻塞，在线程池中执行。"""
    try:
        return services.ensure_started()
    except TestnetError as e:
        raise HTTPException(status_code=500, detail=f"测试网启动失败: {e}")
