import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

DEFAULT_LOG_DIR = Path.home() / ".local" / "share" / "sirelia" / "logs"

def setup_logging(debug: bool = False, log_dir: Optional[Path] = None):
    """Configure logging for the Sirelia bridge.

    Args:
        debug: Whether to enable debug logging
        log_dir: Directory for the rotating log file
    """
    log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    log_level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(name)s] [%(levelname)s] %(message)s',
        handlers=[
            RotatingFileHandler(
                log_dir / "sirelia.log",
                maxBytes=10*1024*1024,  # 10MB
                backupCount=5
            ),
            logging.StreamHandler(sys.stderr)
        ],
        force=True
    )

    # Configure specific loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    logger = logging.getLogger("sirelia")
    logger.setLevel(log_level)
    return logger
