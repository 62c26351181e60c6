# src/rexcore/logging_config.py
"""
Logging configuration for rexcore.

rexcore modules only create module loggers (``logging.getLogger(__name__)``);
nothing is configured at import time. Applications embedding the dispatch
core call ``configure_logging`` once, usually with the ``logging`` section
of their RExConfig.

Key concepts:

    **Display filter**: With ``console_enabled=False`` (the default) the
    console handler only passes records logged with
    ``extra={"display": True}`` (see ``log_display``), so pipeline
    milestones reach the operator while per-attempt chatter stays in the
    log file.

    **Pipeline steps**: ``log_pipeline_step`` and ``log_cost_report`` emit
    structured records (``extra={"rex_step": ...}``) for each engine stage.

Usage:
    from rexcore.logging_config import configure_logging
    configure_logging(app_name="rex-api", config=rex_config.logging)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(name)s - %(message)s",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/rexcore/logs",
    "file_mode": "single",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "rexcore": "INFO",
        "openai": "WARNING",
        "anthropic": "WARNING",
        "google_genai": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "asyncio": "WARNING",
    },
}


def _level(value: Union[str, int, None], default: int) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        resolved = logging.getLevelName(value.upper())
        if isinstance(resolved, int):
            return resolved
    return default


class DisplayFilter(logging.Filter):
    """
    Gate for the console handler.

    When the console is globally enabled every record passes and the
    handler level decides. Otherwise only records flagged ``display=True``
    at or above ``display_min_level`` pass.
    """

    def __init__(self, console_globally_enabled: bool = False, display_min_level: int = logging.INFO) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


class LoggingManager:
    """
    Owns the handlers rexcore installs on the root logger.

    One manager per process is expected; ``configure_logging`` uses a
    shared default instance.
    """

    def __init__(self) -> None:
        self.configured = False
        self.log_file_path: Optional[Path] = None
        self.console_handler: Optional[logging.Handler] = None
        self.file_handler: Optional[logging.Handler] = None
        self.display_filter: Optional[DisplayFilter] = None

    def configure(
        self,
        app_name: str = "rexcore",
        config: Optional[Dict[str, Any]] = None,
        force_reconfigure: bool = False,
    ) -> Optional[Path]:
        """
        Install console and (optionally) file handlers.

        Args:
            app_name: Used in the log file name.
            config: Logging section; missing keys use DEFAULT_LOGGING_CONFIG.
            force_reconfigure: Replace handlers installed by an earlier call.

        Returns:
            Path of the log file, or None when file logging is off.
        """
        if self.configured and not force_reconfigure:
            return self.log_file_path

        log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}
        root_logger = logging.getLogger()
        self._remove_own_handlers(root_logger)
        root_logger.setLevel(logging.DEBUG)

        console_enabled = bool(log_config.get("console_enabled", False))
        self.display_filter = DisplayFilter(
            console_globally_enabled=console_enabled,
            display_min_level=_level(log_config.get("display_min_level"), logging.INFO),
        )
        self.console_handler = logging.StreamHandler(sys.stderr)
        self.console_handler.setFormatter(logging.Formatter(log_config["console_format"]))
        # with the console off the filter is the only gate
        self.console_handler.setLevel(
            _level(log_config.get("console_level"), logging.WARNING) if console_enabled else logging.DEBUG
        )
        self.console_handler.addFilter(self.display_filter)
        root_logger.addHandler(self.console_handler)

        if log_config.get("file_enabled"):
            self.file_handler, self.log_file_path = self._create_file_handler(log_config, app_name)
            if self.file_handler:
                root_logger.addHandler(self.file_handler)

        for component, level in (log_config.get("components") or {}).items():
            logging.getLogger(component).setLevel(_level(level, logging.INFO))

        self.configured = True
        logging.getLogger(__name__).debug(f"rexcore logging configured (file: {self.log_file_path})")
        return self.log_file_path

    def _remove_own_handlers(self, root_logger: logging.Logger) -> None:
        for handler in (self.console_handler, self.file_handler):
            if handler is not None:
                root_logger.removeHandler(handler)
                handler.close()
        self.console_handler = None
        self.file_handler = None
        self.log_file_path = None

    def _create_file_handler(self, config: Dict[str, Any], app_name: str) -> Tuple[Optional[logging.Handler], Optional[Path]]:
        log_dir = Path(os.path.expanduser(config["file_directory"]))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        try:
            if config.get("file_mode") == "per_run":
                filename = config["file_name_pattern"].format(app=app_name, timestamp=datetime.now())
                path = log_dir / filename
                handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
            else:
                path = log_dir / config["file_single_name"].format(app=app_name)
                handler = RotatingFileHandler(
                    path,
                    maxBytes=int(config["rotation_max_bytes"]),
                    backupCount=int(config["rotation_backup_count"]),
                    encoding="utf-8",
                )
        except (KeyError, ValueError, OSError) as e:
            sys.stderr.write(f"Warning: Cannot create log file in {log_dir}: {e}\n")
            return None, None

        handler.setLevel(_level(config.get("file_level"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config["file_format"]))
        return handler, path

    def set_console_level(self, level: Union[str, int]) -> None:
        if self.console_handler is not None:
            self.console_handler.setLevel(_level(level, self.console_handler.level))

    def set_component_level(self, component: str, level: Union[str, int]) -> None:
        component_logger = logging.getLogger(component)
        component_logger.setLevel(_level(level, component_logger.level))


_default_manager = LoggingManager()


def configure_logging(
    app_name: str = "rexcore",
    config: Optional[Dict[str, Any]] = None,
    force_reconfigure: bool = False,
) -> Optional[Path]:
    """Configure logging through the shared LoggingManager."""
    return _default_manager.configure(app_name=app_name, config=config, force_reconfigure=force_reconfigure)


def get_logging_manager() -> LoggingManager:
    return _default_manager


def get_log_file_path() -> Optional[Path]:
    """Current log file, or None when file logging is off or not configured."""
    return _default_manager.log_file_path


def set_console_level(level: Union[str, int]) -> None:
    _default_manager.set_console_level(level)


def set_component_level(component: str, level: Union[str, int]) -> None:
    _default_manager.set_component_level(component, level)


def log_display(logger: logging.Logger, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
    """
    Log a record that also reaches the console in silent mode.

    The caller's ``extra`` is merged, not replaced.
    """
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def log_pipeline_step(
    logger: logging.Logger,
    user_id: Optional[str],
    step: str,
    phase: str,
    **meta: Any,
) -> None:
    """Structured record for an engine stage (``phase`` is start, end or error)."""
    level = logging.WARNING if phase == "error" else logging.DEBUG
    details = f" {meta}" if meta else ""
    logger.log(
        level,
        f"[pipeline] user={user_id or '-'} step={step} phase={phase}{details}",
        extra={"rex_step": step, "rex_phase": phase, "rex_user": user_id},
    )


def log_cost_report(logger: logging.Logger, user_id: Optional[str], report: Any) -> None:
    """One INFO record summarizing a request's token usage and estimated cost."""
    logger.info(
        f"[cost] user={user_id or '-'} tokens={report.total_tokens} estimated_cost={report.estimated_cost:.6f}",
        extra={"rex_step": "cost", "rex_user": user_id},
    )
