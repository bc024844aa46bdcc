"""Configuration management for the mailbox harvesting pipeline."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence, TypeVar

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()

logger = logging.getLogger(__name__)

SPREADSHEET_MIME_TYPES = {
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

ModelT = TypeVar("ModelT", bound=BaseModel)


def _split_list(value: str | Sequence[str] | None, coerce_lower: bool = True) -> list[str]:
    """Turn delimiter-separated strings (or sequences) into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,]", value)
    else:
        items = list(value)
    cleaned: list[str] = []
    for item in items:
        trimmed = str(item).strip()
        if not trimmed:
            continue
        cleaned.append(trimmed.lower() if coerce_lower else trimmed)
    return cleaned


class AllowList(BaseModel):
    """Permitted sender and receiver addresses."""

    senders: list[str] = Field(default_factory=list)
    receivers: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _unwrap_legacy_layout(cls, data):
        # Older files nest both lists under a "whitelist" key.
        if isinstance(data, dict) and isinstance(data.get("whitelist"), dict):
            return data["whitelist"]
        return data

    @field_validator("senders", "receivers", mode="before")
    @classmethod
    def _normalize_addresses(cls, value):
        if not isinstance(value, (str, list, tuple)):
            return value
        return _split_list(value, coerce_lower=True)


class HeaderFilterConfig(BaseModel):
    """Header names kept when a header block is projected."""

    headers_to_filter: list[str] = Field(default_factory=list)

    @field_validator("headers_to_filter", mode="before")
    @classmethod
    def _clean_names(cls, value):
        if not isinstance(value, (str, list, tuple)):
            return value
        return _split_list(value, coerce_lower=False)


def load_json_config(path: Path, model: type[ModelT]) -> ModelT:
    """Read a static JSON config file, falling back to an empty model."""
    try:
        return model.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Config file %s not found; using empty %s", path, model.__name__)
    except (OSError, UnicodeDecodeError, ValidationError) as exc:
        logger.warning("Config file %s is unreadable (%s); using empty %s", path, exc, model.__name__)
    return model()


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    pop3_host: str = Field(..., alias="POP3_HOST")
    pop3_port: int = Field(995, alias="POP3_PORT")
    pop3_username: str = Field(..., alias="POP3_USERNAME")
    pop3_password: str = Field(..., alias="POP3_PASSWORD")
    pop3_timeout: float = Field(60.0, alias="POP3_TIMEOUT")

    allow_list_path: Path = Field(Path("config/allowed_emails.json"), alias="ALLOW_LIST_PATH")
    header_filter_path: Path = Field(
        Path("config/email_header_filter_config.json"), alias="HEADER_FILTER_PATH"
    )
    ledger_path: Path = Field(Path("config/processed_emails.json"), alias="LEDGER_PATH")
    eml_dir: Path = Field(Path("emails"), alias="EML_DIR")
    attachment_dir: Path = Field(Path("excels"), alias="ATTACHMENT_DIR")

    attachment_extensions_raw: str = Field("xls;xlsx", alias="ATTACHMENT_EXTENSIONS")
    write_duplicate_attachments: bool = Field(True, alias="WRITE_DUPLICATE_ATTACHMENTS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_extensions(self):
        unknown = [ext for ext in self.attachment_extensions if ext not in SPREADSHEET_MIME_TYPES]
        if unknown:
            raise ValueError(
                f"ATTACHMENT_EXTENSIONS may only name spreadsheet types, got: {', '.join(unknown)}"
            )
        return self

    @field_validator("pop3_port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("POP3_PORT must be between 1 and 65535.")
        return value

    @property
    def attachment_extensions(self) -> list[str]:
        extensions = [ext.lstrip(".") for ext in _split_list(self.attachment_extensions_raw)]
        return extensions or list(SPREADSHEET_MIME_TYPES)

    def load_allow_list(self) -> AllowList:
        return load_json_config(self.allow_list_path, AllowList)

    def load_header_filter(self) -> HeaderFilterConfig:
        return load_json_config(self.header_filter_path, HeaderFilterConfig)
