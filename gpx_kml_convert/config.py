"""Environment-driven settings and logging setup."""

import logging
import os

from pydantic import BaseModel

ENV_PREFIX = "GPX_KML_"

_TRUE = {"1", "true", "yes", "on"}


def _env(name: str, default: str) -> str:
    return os.environ.get(ENV_PREFIX + name, default).strip()


class Settings(BaseModel):
    log_level: str = "INFO"
    pretty: bool = True
    strict: bool = False
    include_times: bool = False
    max_upload_mb: float = 25.0
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            pretty=_env("PRETTY", "true").lower() in _TRUE,
            strict=_env("STRICT", "false").lower() in _TRUE,
            include_times=_env("INCLUDE_TIMES", "false").lower() in _TRUE,
            max_upload_mb=float(_env("MAX_UPLOAD_MB", "25")),
            host=_env("HOST", "0.0.0.0"),
            port=int(_env("PORT", "8000")),
        )

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)


def setup_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("gpx_kml_convert")
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")
    logger.setLevel(level)
    return logger
