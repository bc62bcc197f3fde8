"""
主程序入口

启动以下并发任务：
1. 网络扫描定时器（发现 -> 拉取 -> 发布 scan-completed）
2. 聚合消费者（scan-completed 后落库并生成告警）
3. 数据清理任务
4. REST API 服务
5. 被扫描端服务（可选）
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from . import __version__
from .aggregator import run_cleanup
from .config import get_config, load_config, set_config
from .runtime import Runtime, get_runtime
from .utils import generate_token


def setup_logging():
    """配置日志"""
    config = get_config()

    # 日志格式
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # 获取日志级别
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    # 配置根日志
    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def acquire_single_instance_lock(lock_path: Path):
    """
    防止误启动多个实例（多实例会导致端口冲突、重复扫描、SQLite 写入竞争）。

    通过文件锁实现：同一台机器同一路径下只能有一个进程持锁。
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    # 锁定首字节，Windows 上需要文件至少有 1 字节
    handle = open(lock_path, "a+b")
    handle.seek(0)
    if not handle.read(1):
        handle.write(b"0")
        handle.flush()
    handle.seek(0)

    try:
        if os.name == "nt":
            import msvcrt  # type: ignore

            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            import fcntl  # type: ignore

            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        handle.close()
        raise RuntimeError(f"Another Usage Aggregator instance is already running (lock: {lock_path})") from e

    try:
        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()).encode("utf-8"))
        handle.flush()
    except OSError:
        # 写 PID 失败不影响锁语义
        pass

    return handle


async def run_api_server():
    """运行 API 服务器"""
    from .api.app import create_app

    config = get_config()
    app = create_app()

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def run_peer_server():
    """运行被扫描端服务（监听客户端端口）"""
    from .peer_service import create_peer_app

    config = get_config()
    server_config = uvicorn.Config(
        app=create_peer_app(config),
        host=config.peer_service.host,
        port=config.discovery.client_port,
        log_level="warning",
        access_log=False
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def run_scanner(runtime: Runtime):
    """运行扫描定时器，直到被取消"""
    runtime.scanner.start()
    try:
        await runtime.scanner.wait_stopped()
    finally:
        runtime.scanner.stop()


async def main():
    """主函数：启动所有任务"""
    logger = logging.getLogger(__name__)

    # 设置日志
    setup_logging()
    logger.info("=" * 60)
    logger.info(f"Usage Aggregator v{__version__}")
    logger.info("=" * 60)

    config = get_config()
    logger.info(f"Config loaded: API={config.api.host}:{config.api.port}, peer port={config.discovery.client_port}")
    logger.info(f"Database: {config.database.path}")

    # 单实例锁：避免重复启动
    try:
        lock_handle = acquire_single_instance_lock(Path(config.database.path).parent / "usage-aggregator.lock")
    except RuntimeError as e:
        logger.error(str(e))
        return

    runtime = get_runtime()
    logger.info(f"Database initialized: {runtime.store.db_path}")

    tasks = [
        run_scanner(runtime),
        runtime.aggregator.consume_events(runtime.bus),
        run_cleanup(runtime.store, config.retention.days, config.retention.cleanup_hour),
    ]
    if config.api.enabled:
        tasks.append(run_api_server())
    if config.peer_service.enabled:
        tasks.append(run_peer_server())

    logger.info(f"Starting {len(tasks)} concurrent tasks...")

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        runtime.scanner.stop()
        lock_handle.close()


def cli(argv: Optional[list] = None):
    """命令行入口"""
    parser = argparse.ArgumentParser(prog="usage-aggregator", description="LAN usage discovery and aggregation service")
    parser.add_argument("-c", "--config", help="配置文件路径（默认 config.yaml 或 $USAGE_AGGREGATOR_CONFIG）")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--generate-token", action="store_true", help="生成随机 Token（admin_token / discovery_key）后退出")
    args = parser.parse_args(argv)

    if args.generate_token:
        print(generate_token())
        return

    if args.config:
        set_config(load_config(args.config))

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
