import json
import logging
import sys
from datetime import datetime, timezone

from doclib.config import settings

_configured = False


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str | None = None, json_format: bool | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    if _configured:
        return

    use_json = settings.log_json if json_format is None else json_format
    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
    root.addHandler(handler)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
