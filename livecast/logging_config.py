"""livecast CLI 로깅 설정.

LOG_LEVEL / LOG_FILE 환경변수(config/.env)를 기본값으로 사용합니다.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / "config" / ".env")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# ICE 체크, RTP, engine.io 패킷 단위 로그
NOISY_LOGGERS = ("aiortc", "aioice", "socketio", "engineio", "aiohttp", "libav")


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """루트 로거에 콘솔 핸들러와 (지정 시) 회전 파일 핸들러를 설정합니다."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("livecast").debug(f"[Session] 로깅 설정: level={level}, file={log_file}")
