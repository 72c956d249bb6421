from enum import Enum
from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore


class DocType(str, Enum):
    MARKDOWN = "Markdown"
    MERMAID = "Mermaid"

    @property
    def extension(self) -> str:
        return ".md" if self is DocType.MARKDOWN else ".mmd"


class Settings(BaseSettings):
    # Security
    WHITELIST_FILE: str = "allowed_hosts.json"
    ALLOWED_HOSTS_ENV: str = ""  # Comma-separated list of allowed API hosts from env

    # Directory APIs
    VOICE_API_URL: str = "https://api.interfaces.records.teams.microsoft.com/Teams.VoiceApps"
    GRAPH_API_URL: str = "https://graph.microsoft.com/v1.0"
    HTTP_TIMEOUT: float = 10.0

    # Rendering defaults
    DOC_TYPE: DocType = DocType.MARKDOWN
    SHOW_NESTED_QUEUES: bool = True
    SHOW_NESTED_PHONE_NUMBERS: bool = False
    NESTED_QUEUE_DEPTH: int = 1
    SHOW_ADMIN_LINKS: bool = False
    PHONE_NUMBER: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def allowed_hosts(self):
        return [h.strip() for h in self.ALLOWED_HOSTS_ENV.split(",") if h.strip()]


class RenderOptions(BaseModel):
    """Options for one render, defaulted from the process settings."""

    doc_type: DocType = DocType.MARKDOWN
    show_nested_queues: bool = True
    show_nested_phone_numbers: bool = False
    max_nested_depth: int = 1
    show_admin_links: bool = False
    phone_number: Optional[str] = None
    voice_app_id: Optional[str] = None

    @classmethod
    def from_settings(cls, source: "Settings", **overrides) -> "RenderOptions":
        values = {
            "doc_type": source.DOC_TYPE,
            "show_nested_queues": source.SHOW_NESTED_QUEUES,
            "show_nested_phone_numbers": source.SHOW_NESTED_PHONE_NUMBERS,
            "max_nested_depth": source.NESTED_QUEUE_DEPTH,
            "show_admin_links": source.SHOW_ADMIN_LINKS,
            "phone_number": source.PHONE_NUMBER,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        # A requested voice app id replaces the configured phone number
        if overrides.get("voice_app_id") and not overrides.get("phone_number"):
            values["phone_number"] = None
        return cls(**values)


settings = Settings()
