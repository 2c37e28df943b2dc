"""
Painel C4U — Configuração via variáveis de ambiente (.env suportado)
"""
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
LOG_DATEFMT = "%H:%M:%S"

DEFAULT_BASE_URL = "https://service2.funifier.com"


@dataclass
class Settings:
    base_url: str = DEFAULT_BASE_URL
    basic_token: str = ""
    bearer_token: str = ""
    http_timeout: float = 15.0
    http_retries: int = 3
    kpi_target: float = 100.0
    kpi_cache_ttl: float = 0.0                    # 0 = vale pela sessão inteira
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("%s inválido (%r), usando %s", name, raw, default)
        return default


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        base_url=os.getenv("FUNIFIER_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        basic_token=os.getenv("FUNIFIER_BASIC_TOKEN", ""),
        bearer_token=os.getenv("FUNIFIER_TOKEN", ""),
        http_timeout=_env_float("HTTP_TIMEOUT", 15.0),
        http_retries=int(_env_float("HTTP_RETRIES", 3)),
        kpi_target=_env_float("KPI_TARGET", 100.0),
        kpi_cache_ttl=_env_float("KPI_CACHE_TTL", 0.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
