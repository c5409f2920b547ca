import json
import logging
import sys
from typing import Optional, TextIO

import config


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # Optional context injected via `extra=`
        for key in ("month", "url", "rows"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def init_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure the root logger to write to ``stream`` (stdout by default).
    Safe to call multiple times; Streamlit reruns the script on every interaction.
    """
    if getattr(init_logging, "_configured", False):
        return

    root = logging.getLogger()
    root.setLevel((level or config.LOG_LEVEL).upper())

    use_json = config.LOG_JSON if json_output is None else json_output
    if use_json:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(formatter)

    root.handlers.clear()
    root.addHandler(handler)

    init_logging._configured = True  # type: ignore[attr-defined]
