"""
Application configuration.

Settings come from a YAML file (CONFIG_FILE, default `config.yaml`); secrets
and connection details may instead come from the environment or a `.env` file.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

log = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"


def _known(cls, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only the keys `cls` declares; unknown keys are ignored."""
    if not isinstance(data, dict):
        return {}
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names and v is not None}


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class FetcherConfig:
    max_age_days: int = 30
    max_pages: int = 1
    interval: str = ""
    category_paths: List[str] = field(default_factory=list)
    base_url: str = "https://eleduck.com"
    remote_markers: List[str] = field(default_factory=lambda: ["远程", "remote"])

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FetcherConfig":
        cfg = cls(**_known(cls, data))
        cfg.max_age_days = _int(cfg.max_age_days, 30)
        cfg.max_pages = _int(cfg.max_pages, 1)
        cfg.interval = str(cfg.interval or "")
        cfg.category_paths = _str_list(cfg.category_paths)
        cfg.remote_markers = _str_list(cfg.remote_markers)
        return cfg


@dataclass
class DeepseekConfig:
    api_base: str = ""
    api_key: str = ""
    model: str = ""
    timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DeepseekConfig":
        cfg = cls(**_known(cls, data))
        if not cfg.api_key:
            cfg.api_key = os.getenv("DEEPSEEK_API_KEY", "")
        return cfg


@dataclass
class ProcessorConfig:
    keywords: List[str] = field(default_factory=list)
    prompt_template: str = ""
    tag_candidates: List[str] = field(default_factory=list)
    employment_types: List[str] = field(default_factory=list)
    salary_ranges: List[str] = field(default_factory=list)
    role_categories: List[str] = field(default_factory=list)
    language_options: List[str] = field(default_factory=list)
    batch_size: int = 20
    deepseek: DeepseekConfig = field(default_factory=DeepseekConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProcessorConfig":
        values = _known(cls, data)
        values["deepseek"] = DeepseekConfig.from_dict(values.get("deepseek"))
        cfg = cls(**values)
        for name in (
            "keywords",
            "tag_candidates",
            "employment_types",
            "salary_ranges",
            "role_categories",
            "language_options",
        ):
            setattr(cfg, name, _str_list(getattr(cfg, name)))
        cfg.batch_size = _int(cfg.batch_size, 20)
        cfg.prompt_template = str(cfg.prompt_template or "")
        return cfg


@dataclass
class SchedulerConfig:
    interval: str = ""
    timeout: str = "30s"
    batch_size: int = 20


@dataclass
class EmailConfig:
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    sender: str = ""
    to: List[str] = field(default_factory=list)
    subject: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EmailConfig":
        data = dict(data or {})
        # `from` is a keyword in Python; the YAML key keeps the natural name.
        if "from" in data:
            data["sender"] = data.pop("from")
        cfg = cls(**_known(cls, data))
        cfg.host = cfg.host or os.getenv("SMTP_SERVER", "")
        cfg.port = _int(data.get("port") or os.getenv("SMTP_PORT"), 587)
        cfg.username = cfg.username or os.getenv("EMAIL_USER", "")
        cfg.password = cfg.password or os.getenv("EMAIL_PASSWORD", "")
        cfg.sender = cfg.sender or os.getenv("EMAIL_FROM", "") or cfg.username
        cfg.to = _str_list(cfg.to)
        return cfg


@dataclass
class NotifierConfig:
    driver: str = "email"


@dataclass
class ServerConfig:
    addr: str = ":8080"


@dataclass
class DatabaseConfig:
    url: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DatabaseConfig":
        data = dict(data or {})
        # older configs name the SQLite file `path`
        if not data.get("url") and data.get("path"):
            data["url"] = data["path"]
        cfg = cls(**_known(cls, data))
        cfg.url = cfg.url or os.getenv("DATABASE_URL", "")
        return cfg


@dataclass
class SubscriptionConfig:
    allowed_channels: List[str] = field(default_factory=lambda: ["email"])


@dataclass
class AppConfig:
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    processor: ProcessorConfig = field(default_factory=ProcessorConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    subscription: SubscriptionConfig = field(default_factory=SubscriptionConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AppConfig":
        data = data if isinstance(data, dict) else {}
        fetcher = FetcherConfig.from_dict(data.get("fetcher"))
        processor = ProcessorConfig.from_dict(data.get("processor"))

        sched = SchedulerConfig(**_known(SchedulerConfig, data.get("scheduler")))
        sched.interval = sched.interval or fetcher.interval
        sched.timeout = str(sched.timeout or "30s")
        sched.batch_size = processor.batch_size

        notifier = NotifierConfig(**_known(NotifierConfig, data.get("notifier")))
        server = ServerConfig(**_known(ServerConfig, data.get("server")))
        subscription = SubscriptionConfig(**_known(SubscriptionConfig, data.get("subscription")))
        subscription.allowed_channels = _str_list(subscription.allowed_channels)

        return cls(
            fetcher=fetcher,
            processor=processor,
            scheduler=sched,
            email=EmailConfig.from_dict(data.get("email")),
            notifier=notifier,
            server=server,
            database=DatabaseConfig.from_dict(data.get("database")),
            subscription=subscription,
        )


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from YAML, after reading `.env` into the environment.
    A missing file yields defaults plus whatever the environment provides.
    """
    load_dotenv()
    path = path or os.getenv("CONFIG_FILE") or DEFAULT_CONFIG_FILE
    config_path = Path(path)
    if not config_path.exists():
        log.warning("Config file not found, using defaults", extra={"path": str(config_path)})
        return AppConfig.from_dict({})

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return AppConfig.from_dict(data)


__all__ = [
    "AppConfig",
    "FetcherConfig",
    "DeepseekConfig",
    "ProcessorConfig",
    "SchedulerConfig",
    "EmailConfig",
    "NotifierConfig",
    "ServerConfig",
    "DatabaseConfig",
    "SubscriptionConfig",
    "load_config",
]
