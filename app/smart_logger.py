import json
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from app.core.log_sanitize import sanitize_for_log


LEVEL_PRIORITY = {
    "DEBUG": 0,
    "INFO": 1,
    "WARNING": 2,
    "ERROR": 3,
    "CRITICAL": 4,
}


def _env(key: str, default: str) -> str:
    return os.environ.get(f"SMART_LOGGER_{key}", default)


@dataclass(frozen=True)
class LoggerSettings:
    main_log_path: str = "logs/app_flow.jsonl"
    detail_log_dir: str = "logs/details"
    min_level: str = "INFO"
    include_all_min_level: str = "ERROR"
    console_output: bool = True
    file_output: bool = False

    @classmethod
    def from_env(cls) -> "LoggerSettings":
        return cls(
            main_log_path=_env("MAIN_LOG_PATH", cls.main_log_path),
            detail_log_dir=_env("DETAIL_LOG_DIR", cls.detail_log_dir),
            min_level=_env("MIN_LEVEL", cls.min_level).upper(),
            include_all_min_level=_env("INCLUDE_ALL_MIN_LEVEL", cls.include_all_min_level).upper(),
            console_output=_env("CONSOLE_OUTPUT", "True") == "True",
            file_output=_env("FILE_OUTPUT", "False") == "True",
        )


class SmartLogger:
    """
    Structured logger used across the service.

    Entries are JSON objects (timestamp/level/message/category/params_summary).
    Params are masked by ``sanitize_for_log`` before they are written, since they
    regularly carry user SQL. Params longer than ``max_inline_chars`` move to a
    per-entry detail file and only their shape stays inline, unless the level is
    at or above ``include_all_min_level``.

    Configured by ``SMART_LOGGER_*`` environment variables.
    """

    _instance: Optional["SmartLogger"] = None

    @classmethod
    def instance(cls) -> "SmartLogger":
        if cls._instance is None:
            cls._instance = cls(LoggerSettings.from_env())
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance so the next call re-reads the environment."""
        cls._instance = None

    @classmethod
    def log(cls, level, message, category=None, params=None, max_inline_chars=100):
        cls.instance()._log(str(level).upper(), message, category, params, max_inline_chars)

    def __init__(self, settings: LoggerSettings):
        self.settings = settings
        self._lock = threading.Lock()
        self._trace_second: Optional[str] = None
        self._trace_counter = 0

        if settings.file_output:
            for dir_path in (os.path.dirname(settings.main_log_path), settings.detail_log_dir):
                if dir_path:
                    os.makedirs(dir_path, exist_ok=True)

    def _enabled(self, level: str) -> bool:
        return LEVEL_PRIORITY.get(level, 1) >= LEVEL_PRIORITY.get(self.settings.min_level, 0)

    def _inline_everything(self, level: str) -> bool:
        return LEVEL_PRIORITY.get(level, 1) >= LEVEL_PRIORITY.get(self.settings.include_all_min_level, 3)

    def _next_trace_id(self) -> str:
        # Second-resolution timestamp plus a counter for bursts within that second.
        with self._lock:
            second = str(int(time.time()))
            if second == self._trace_second:
                self._trace_counter += 1
            else:
                self._trace_second = second
                self._trace_counter = 1
            return f"{second}_{self._trace_counter}"

    def _write_detail(self, params: Any) -> Dict[str, Any]:
        if not self.settings.file_output:
            return {"detail_save_error": "file_output_disabled"}
        filename = f"{self._next_trace_id()}.json"
        try:
            with open(os.path.join(self.settings.detail_log_dir, filename), "w", encoding="utf-8") as f:
                json.dump(params, f, ensure_ascii=False, indent=2, default=str)
        except OSError as exc:
            return {"detail_save_error": f"Error saving detail: {exc}"}
        return {"has_detail_file": True, "detail_ref": filename}

    @staticmethod
    def _shape(params: Any) -> Dict[str, Any]:
        if isinstance(params, dict):
            return {"keys": list(params.keys())}
        if isinstance(params, (list, tuple)):
            return {"type": type(params).__name__, "length": len(params)}
        return {"type": type(params).__name__}

    def _log(self, level, message, category=None, params=None, max_inline_chars=100):
        if not self._enabled(level):
            return

        entry: Dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "message": "" if message is None else str(message),
        }
        if category:
            entry["category"] = category

        if params:
            params = sanitize_for_log(params)
            if len(str(params)) <= max_inline_chars or self._inline_everything(level):
                entry["params_summary"] = params
            else:
                entry.update(self._write_detail(params))
                entry["params_summary"] = self._shape(params)

        if self.settings.file_output:
            with self._lock:
                with open(self.settings.main_log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")

        if self.settings.console_output:
            category_str = f"[{category}]" if category else ""
            summary = f" {entry['params_summary']}" if "params_summary" in entry else ""
            print(f"[{level}]{category_str} {entry['message']}{summary}")
