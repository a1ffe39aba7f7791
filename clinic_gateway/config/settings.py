"""
Gateway configuration.

Settings are read from environment variables (``main.py`` loads ``.env``
first) and validated once at startup by pydantic. A bad value raises
``pydantic.ValidationError`` before the server binds its port.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SERVICE_ENV_VARS = {
    "patients": "PATIENT_SERVICE_URL",
    "clinic": "CLINIC_PROVIDER_SERVICE_URL",
    "appointments": "APPOINTMENTS_RECORDS_SERVICE_URL",
    "auth": "AUTH_SERVICE_SERVICE_URL",
}


@dataclass(frozen=True)
class ServiceUrls:
    patients: Optional[str] = None
    clinic: Optional[str] = None
    appointments: Optional[str] = None
    auth: Optional[str] = None

    def get(self, name: str) -> Optional[str]:
        return getattr(self, name, None)


class GatewaySettings(BaseSettings):
    port: int = Field(default=3000, validation_alias="PORT")
    environment: str = Field(default="development", validation_alias="GATEWAY_ENV")
    mount_path: str = Field(default="/api/gateway", validation_alias="GATEWAY_MOUNT_PATH")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    patients_url: Optional[AnyHttpUrl] = Field(default=None, validation_alias="PATIENT_SERVICE_URL")
    clinic_url: Optional[AnyHttpUrl] = Field(default=None, validation_alias="CLINIC_PROVIDER_SERVICE_URL")
    appointments_url: Optional[AnyHttpUrl] = Field(
        default=None, validation_alias="APPOINTMENTS_RECORDS_SERVICE_URL"
    )
    auth_url: Optional[AnyHttpUrl] = Field(default=None, validation_alias="AUTH_SERVICE_SERVICE_URL")

    upstream_timeout: float = Field(default=5.0, gt=0, validation_alias="UPSTREAM_TIMEOUT")
    auth_timeout: float = Field(default=5.0, gt=0, validation_alias="AUTH_TIMEOUT")
    auth_required: bool = Field(default=True, validation_alias="AUTH_REQUIRED")

    model_config = SettingsConfigDict(
        extra="ignore",
        frozen=True,
        env_ignore_empty=True,
        populate_by_name=True,
    )

    @field_validator("mount_path", mode="before")
    @classmethod
    def _normalize_mount(cls, value):
        mount = str(value).strip() if value is not None else ""
        if not mount:
            return "/api/gateway"
        if not mount.startswith("/"):
            raise ValueError(f"mount path must start with '/': {mount!r}")
        return mount.rstrip("/") or "/"

    @field_validator("patients_url", "clinic_url", "appointments_url", "auth_url", mode="before")
    @classmethod
    def _blank_url_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewaySettings":
        """Reads the process environment, or only ``environ`` when one is given."""
        if environ is None:
            return cls()
        # model_validate skips the env sources, so nothing leaks in from os.environ
        return cls.model_validate({k: v for k, v in environ.items() if v.strip()})

    @property
    def services(self) -> ServiceUrls:
        return ServiceUrls(
            patients=_strip_url(self.patients_url),
            clinic=_strip_url(self.clinic_url),
            appointments=_strip_url(self.appointments_url),
            auth=_strip_url(self.auth_url),
        )

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "INFO" if self.is_production else "DEBUG"


def _strip_url(url: Optional[AnyHttpUrl]) -> Optional[str]:
    if url is None:
        return None
    return str(url).rstrip("/")
