"""Configuration loader for checkin-printer."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from . import constants

DEFAULT_DAEMON_URL = (
    f"ws://{constants.DEFAULT_DAEMON_HOST}:{constants.DEFAULT_DAEMON_PORT}"
)


@dataclass(slots=True)
class DaemonConfig:
    url: str = DEFAULT_DAEMON_URL
    connect_timeout_seconds: float = 5.0
    request_timeout_seconds: float = 10.0
    reconnect_initial_seconds: float = 1.0
    reconnect_max_seconds: float = 30.0
    reconnect_jitter_ratio: float = 0.5
    reconnect_max_attempts: int = 10
    push_api_name: str = constants.PUSH_API_NAME


@dataclass(slots=True)
class SessionConfig:
    font_dir: str = ""
    stabilization_delay_seconds: float = 0.5  # pause between initSdk and selectPrinter
    select_attempts: int = 2
    select_retry_delay_seconds: float = 1.0
    auto_select_first: bool = True


@dataclass(slots=True)
class LabelConfig:
    paper_width_mm: float = 50.0
    paper_height_mm: float = 30.0
    margin_mm: float = 2.0
    font_family: str = "宋体"
    font_file: str = "ZT001.ttf"
    event_font_size: float = 3.5
    name_font_size: float = 3.2
    identifier_font_size: float = 2.5
    department_font_size: float = 2.5
    position_font_size: float = 2.5
    line_spacing: float = 1.0
    show_event_name: bool = False
    event_name: str = ""
    show_name_prefix: bool = False
    name_prefix: str = ""
    show_position_prefix: bool = False
    position_prefix: str = ""
    show_department_prefix: bool = False
    department_prefix: str = ""
    identifier_prefix: str = "ID: "
    include_position: bool = True
    include_qr: bool = True


@dataclass(slots=True)
class JobConfig:
    density: int = 3
    label_type: int = 1  # gap paper
    print_mode: int = 1  # thermal
    quantity: int = 1
    timeout_seconds: float = constants.DEFAULT_JOB_TIMEOUT_SECONDS


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class PrinterAppConfig:
    daemon: DaemonConfig
    session: SessionConfig
    label: LabelConfig
    job: JobConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser = field(default_factory=ConfigParser)
    path: Path = constants.DEFAULT_CONFIG_PATH


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def load_config(path: Optional[Path] = None) -> PrinterAppConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    daemon_defaults = DaemonConfig()
    session_defaults = SessionConfig()
    label_defaults = LabelConfig()
    job_defaults = JobConfig()

    parser = ConfigParser()
    parser.read_dict(
        {
            "daemon": {
                "url": daemon_defaults.url,
                "connect_timeout_seconds": str(daemon_defaults.connect_timeout_seconds),
                "request_timeout_seconds": str(daemon_defaults.request_timeout_seconds),
                "reconnect_initial_seconds": str(
                    daemon_defaults.reconnect_initial_seconds
                ),
                "reconnect_max_seconds": str(daemon_defaults.reconnect_max_seconds),
                "reconnect_jitter_ratio": str(daemon_defaults.reconnect_jitter_ratio),
                "reconnect_max_attempts": str(daemon_defaults.reconnect_max_attempts),
                "push_api_name": daemon_defaults.push_api_name,
            },
            "session": {
                "font_dir": session_defaults.font_dir,
                "stabilization_delay_seconds": str(
                    session_defaults.stabilization_delay_seconds
                ),
                "select_attempts": str(session_defaults.select_attempts),
                "select_retry_delay_seconds": str(
                    session_defaults.select_retry_delay_seconds
                ),
                "auto_select_first": "true",
            },
            "label": {
                "paper_width_mm": str(label_defaults.paper_width_mm),
                "paper_height_mm": str(label_defaults.paper_height_mm),
                "font_family": label_defaults.font_family,
                "font_file": label_defaults.font_file,
            },
            "job": {
                "density": str(job_defaults.density),
                "label_type": str(job_defaults.label_type),
                "print_mode": str(job_defaults.print_mode),
                "quantity": str(job_defaults.quantity),
                "timeout_seconds": str(job_defaults.timeout_seconds),
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path, encoding="utf-8")

    daemon = DaemonConfig(
        url=parser.get("daemon", "url"),
        connect_timeout_seconds=max(
            0.1, parser.getfloat("daemon", "connect_timeout_seconds")
        ),
        request_timeout_seconds=max(
            0.1, parser.getfloat("daemon", "request_timeout_seconds")
        ),
        reconnect_initial_seconds=max(
            0.0, parser.getfloat("daemon", "reconnect_initial_seconds")
        ),
        reconnect_max_seconds=max(
            0.0, parser.getfloat("daemon", "reconnect_max_seconds")
        ),
        reconnect_jitter_ratio=_clamp(
            parser.getfloat("daemon", "reconnect_jitter_ratio"), 0.0, 1.0
        ),
        reconnect_max_attempts=max(
            0, parser.getint("daemon", "reconnect_max_attempts")
        ),
        push_api_name=parser.get("daemon", "push_api_name"),
    )

    session = SessionConfig(
        font_dir=parser.get("session", "font_dir"),
        stabilization_delay_seconds=max(
            0.0, parser.getfloat("session", "stabilization_delay_seconds")
        ),
        select_attempts=max(1, parser.getint("session", "select_attempts")),
        select_retry_delay_seconds=max(
            0.0, parser.getfloat("session", "select_retry_delay_seconds")
        ),
        auto_select_first=parser.getboolean("session", "auto_select_first"),
    )

    label = LabelConfig(
        paper_width_mm=parser.getfloat("label", "paper_width_mm"),
        paper_height_mm=parser.getfloat("label", "paper_height_mm"),
        margin_mm=parser.getfloat(
            "label", "margin_mm", fallback=label_defaults.margin_mm
        ),
        font_family=parser.get("label", "font_family"),
        font_file=parser.get("label", "font_file"),
        event_font_size=parser.getfloat(
            "label", "event_font_size", fallback=label_defaults.event_font_size
        ),
        name_font_size=parser.getfloat(
            "label", "name_font_size", fallback=label_defaults.name_font_size
        ),
        identifier_font_size=parser.getfloat(
            "label",
            "identifier_font_size",
            fallback=label_defaults.identifier_font_size,
        ),
        department_font_size=parser.getfloat(
            "label",
            "department_font_size",
            fallback=label_defaults.department_font_size,
        ),
        position_font_size=parser.getfloat(
            "label", "position_font_size", fallback=label_defaults.position_font_size
        ),
        line_spacing=parser.getfloat(
            "label", "line_spacing", fallback=label_defaults.line_spacing
        ),
        show_event_name=parser.getboolean("label", "show_event_name", fallback=False),
        event_name=parser.get("label", "event_name", fallback=""),
        show_name_prefix=parser.getboolean(
            "label", "show_name_prefix", fallback=False
        ),
        name_prefix=parser.get("label", "name_prefix", fallback=""),
        show_position_prefix=parser.getboolean(
            "label", "show_position_prefix", fallback=False
        ),
        position_prefix=parser.get("label", "position_prefix", fallback=""),
        show_department_prefix=parser.getboolean(
            "label", "show_department_prefix", fallback=False
        ),
        department_prefix=parser.get("label", "department_prefix", fallback=""),
        identifier_prefix=parser.get(
            "label", "identifier_prefix", fallback=label_defaults.identifier_prefix
        ),
        include_position=parser.getboolean("label", "include_position", fallback=True),
        include_qr=parser.getboolean("label", "include_qr", fallback=True),
    )

    job = JobConfig(
        density=parser.getint("job", "density"),
        label_type=parser.getint("job", "label_type"),
        print_mode=parser.getint("job", "print_mode"),
        quantity=max(1, parser.getint("job", "quantity")),
        timeout_seconds=max(0.1, parser.getfloat("job", "timeout_seconds")),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return PrinterAppConfig(
        daemon=daemon,
        session=session,
        label=label,
        job=job,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: PrinterAppConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
