"""
FastAPI 应用入口点。
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.testnet.chain.router import router as network_router
from src.testnet.config import config


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"测试网管理服务启动，测试名：{config.test_name}")
    yield
    # 节点容器与卷按 ibc-test 标签由调用方清理，这里只记录网络状态
    from src.testnet.chain import services

    logger.info(f"应用关闭，测试网状态: {services.get_network().state.value}")


app = FastAPI(title="Relay Chain Testnet Service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(network_router, prefix="/v1")

logger.info(f"config: {config.model_dump_json(indent=4)}")
