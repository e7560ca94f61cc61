# main.py - 捕获服务主程序
"""
ScreenIndex - 屏幕捕获 -> 分析 -> 索引 服务

启动本地控制面 HTTP 服务（默认 127.0.0.1:9111），由宿主进程通过
/capture/start、/configure 等接口控制捕获。配置见 .env / config.py
"""

import argparse

import uvicorn

from config import config
from utils.logger import setup_logger
from core.server import CaptureService, create_app

logger = setup_logger("main")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ScreenIndex capture service")
    parser.add_argument("--host", default=config.CONTROL_HOST, help="Control plane bind address")
    parser.add_argument("--port", type=int, default=config.CONTROL_PORT, help="Control plane port")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    logger.info(f"Starting ScreenIndex capture service on {args.host}:{args.port}")
    logger.info(f"{config}")

    service = CaptureService.from_config()
    app = create_app(service)

    uvicorn.run(app, host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
