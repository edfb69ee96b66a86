import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from narrator_core.config.settings import settings


def redact_key(key: Optional[str]) -> str:
    """只保留凭证首尾各 4 个字符，用于日志展示。"""

    if not key:
        return "<empty>"
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("narrator_core")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "narrator.log", encoding="utf-8")
    fh.setLevel(logging.INFO)

    class JsonFormatter(logging.Formatter):
        def format(self, record: logging.LogRecord) -> str:
            msg = record.getMessage()
            if settings.log_redact_content:
                msg = (msg or "")[:64]
            payload = {
                "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname,
                "name": record.name,
                "msg": msg,
            }
            extra = getattr(record, "extra", None)
            if isinstance(extra, dict):
                payload.update(extra)
            return json.dumps(payload, ensure_ascii=False, default=str)

    fh.setFormatter(JsonFormatter())
    logger.addHandler(fh)
    return logger


logger = setup_logger()
