# tp_platform/_logging.py
# Console logger for the agent: colored "[MODULE] LEVEL msg" lines plus an optional JSON-lines sink.
from __future__ import annotations

import datetime
import json
import os
import sys
import threading
from typing import Any, Dict, Mapping, Optional, TextIO

RESET = "\033[0m"
DIM = "\033[90m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[33m"
BLUE = "\033[94m"

LEVELS = {"silent": 60, "error": 40, "warn": 30, "info": 20, "debug": 10}

# label -> (severity, color)
_LABELS: Dict[str, tuple[str, str]] = {
    "DEBUG": ("debug", YELLOW),
    "INFO": ("info", BLUE),
    "WARN": ("warn", YELLOW),
    "ERROR": ("error", RED),
    "SUCCESS": ("info", GREEN),
}


def _env_debug() -> bool:
    return str(os.getenv("TP_DEBUG") or "").strip().lower() in ("1", "true", "yes", "on")


class _Output:
    """State shared by a root logger and every logger derived from it."""

    def __init__(self, stream: TextIO, level: str, color: bool, show_time: bool):
        self.stream = stream
        self.level_no = LEVELS.get(level, LEVELS["info"])
        self.color = color
        self.show_time = show_time
        self.json: Optional[TextIO] = None
        self.lock = threading.Lock()


class Logger:
    def __init__(
        self,
        stream: TextIO = sys.stderr,
        level: str = "info",
        use_color: bool = True,
        show_time: bool = True,
        *,
        _out: Optional[_Output] = None,
        _context: Optional[Mapping[str, Any]] = None,
    ):
        self._out = _out or _Output(stream, level, use_color, show_time)
        self._context: Dict[str, Any] = dict(_context or {})

    @property
    def level_no(self) -> int:
        return self._out.level_no

    def set_level(self, level: str) -> None:
        self._out.level_no = LEVELS.get(str(level or "").lower(), self._out.level_no)

    def enable_json(self, file_path: str) -> None:
        self._out.json = open(file_path, "a", encoding="utf-8")

    def configure(self, runtime: Mapping[str, Any] | None) -> None:
        """Apply the ``runtime`` config section: log_level, debug, log_json."""
        rt = dict(runtime or {})
        if rt.get("log_level"):
            self.set_level(str(rt["log_level"]))
        if rt.get("debug") or _env_debug():
            self.set_level("debug")
        if rt.get("log_json"):
            self.enable_json(str(rt["log_json"]))
        isatty = getattr(self._out.stream, "isatty", None)
        if not (callable(isatty) and isatty()):
            self._out.color = False

    def bind(self, **ctx: Any) -> "Logger":
        return Logger(_out=self._out, _context={**self._context, **ctx})

    def child(self, name: str) -> "Logger":
        return self.bind(module=name)

    def _line(self, label: str, color: str, msg: str) -> str:
        mod = str(self._context.get("module") or "").strip()
        tag = f"{color}{label}{RESET}" if self._out.color else label
        text = f"[{mod}] {tag} {msg}" if mod else f"{tag} {msg}"
        if not self._out.show_time:
            return text
        ts = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        stamp = f"{DIM}[{ts}]{RESET}" if self._out.color else f"[{ts}]"
        return f"{stamp} {text}"

    def _emit(self, label: str, parts: tuple[Any, ...], extra: Optional[Mapping[str, Any]]) -> None:
        severity, color = _LABELS[label]
        if LEVELS[severity] < self._out.level_no and not (severity == "debug" and _env_debug()):
            return
        msg = " ".join(str(p) for p in parts)
        with self._out.lock:
            self._out.stream.write(self._line(label, color, msg) + "\n")
            self._out.stream.flush()
            if self._out.json is None:
                return
            record: Dict[str, Any] = {
                "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds"),
                "level": label,
                "msg": msg,
                "ctx": self._context,
            }
            if extra:
                record["extra"] = dict(extra)
            self._out.json.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
            self._out.json.flush()

    def debug(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("DEBUG", parts, extra)

    def info(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("INFO", parts, extra)

    def warn(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("WARN", parts, extra)

    def error(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("ERROR", parts, extra)

    def success(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("SUCCESS", parts, extra)


log = Logger()

__all__ = ["Logger", "log", "LEVELS"]
