import logging
import sys
import os
from pathlib import Path

BASE_LOGGER_NAME = "screenindex"

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# 第三方库日志太多，只保留警告
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "qdrant_client", "PIL")


def get_log_level() -> int:
    """读取 LOG_LEVEL（config 优先，其次环境变量）"""
    try:
        from config import config
        level_name = config.LOG_LEVEL
    except ImportError:
        level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def _configure_base_logger() -> logging.Logger:
    base = logging.getLogger(BASE_LOGGER_NAME)
    if base.handlers:
        return base

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    base.addHandler(handler)
    base.setLevel(get_log_level())
    base.propagate = False

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return base


def setup_logger(name: str = BASE_LOGGER_NAME, level: int = None) -> logging.Logger:
    """
    返回挂在 screenindex 基础 logger 下的子 logger

    只有基础 logger 带 stdout handler，子 logger 向上传播，
    因此重复调用不会重复输出。

    Args:
        name: 模块名（通常传 __name__）
        level: 单独设置该 logger 的级别（默认跟随 LOG_LEVEL）
    """
    base = _configure_base_logger()
    if name == BASE_LOGGER_NAME:
        logger = base
    else:
        logger = base.getChild(name)
    if level is not None:
        logger.setLevel(level)
    return logger


logger = setup_logger()


def setup_generate_logger(log_file: str = None) -> logging.Logger:
    """
    provider 调用日志（generate_info），只写文件

    每次 vision / embedding / chat 调用一行：类型、provider、耗时、状态。
    默认文件为 <LOG_DIR>/generate_info.log
    """
    call_logger = logging.getLogger("generate_info")
    if call_logger.handlers:
        return call_logger

    if log_file is None:
        try:
            from config import config
            log_dir = config.LOG_DIR
        except ImportError:
            log_dir = os.environ.get("LOG_DIR", "./logs")
        log_file = str(Path(log_dir) / "generate_info.log")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter('%(asctime)s | %(message)s', datefmt=DATE_FORMAT))

    call_logger.addHandler(file_handler)
    call_logger.setLevel(logging.INFO)
    # 不输出到终端
    call_logger.propagate = False
    return call_logger
