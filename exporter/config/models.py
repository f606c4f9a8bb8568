"""Configuration schema models using Pydantic."""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class HttpMethod(str, Enum):
    """HTTP methods supported by request definitions."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"


class PaginationType(str, Enum):
    """How a request walks through a paged API."""

    NONE = "none"
    PAGE = "page"
    CURSOR = "cursor"


class TransformKind(str, Enum):
    """Where a transform's function comes from."""

    BUILTIN = "builtin"
    EXTENSION = "extension"


class TemplateFormat(str, Enum):
    """Shape of a rendered template artifact."""

    TEXT = "text"
    JSON = "json"


class ExportType(str, Enum):
    """Supported export sinks."""

    FILE = "file"
    HTTP = "http"
    EMAIL = "email"


class CredentialsConfig(BaseModel):
    """Credentials for the remote API.

    Either client_id/client_secret (client credentials grant) or a bearer
    access_token obtained elsewhere, e.g. through the PKCE login flow.
    """

    client_id: Optional[str] = Field(None, description="OAuth client id")
    client_secret: Optional[str] = Field(None, description="OAuth client secret")
    redirect_uri: Optional[str] = Field(None, description="Redirect URI for the PKCE flow")
    environment: str = Field(
        "mypurecloud.com", min_length=1, description="API environment domain"
    )
    timeout: int = Field(30, ge=1, le=300, description="HTTP timeout in seconds")
    access_token: Optional[str] = Field(None, description="Pre-issued bearer token")
    token_issued_at: Optional[float] = Field(
        None, description="Unix time the access token was issued"
    )
    token_expires_in: Optional[int] = Field(
        None, ge=0, description="Access token lifetime in seconds"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("environment")
    @classmethod
    def strip_environment(cls, v: str) -> str:
        """Accept 'https://api.mypurecloud.com' style values as the bare domain."""
        stripped = v.strip().rstrip("/")
        for prefix in ("https://", "http://", "api.", "login."):
            if stripped.startswith(prefix):
                stripped = stripped[len(prefix):]
        if not stripped:
            raise ValueError("environment cannot be empty")
        return stripped

    @property
    def api_base_url(self) -> str:
        return f"https://api.{self.environment}"

    @property
    def login_base_url(self) -> str:
        return f"https://login.{self.environment}"


class PaginationPolicy(BaseModel):
    """Pagination settings for a request."""

    type: PaginationType = Field(PaginationType.NONE, description="Pagination style")
    page_size: int = Field(100, ge=1, le=1000, description="Items requested per page")
    collect: Optional[str] = Field(
        None,
        description="List field accumulated across pages (e.g. entities, conversations)",
    )
    max_pages: int = Field(100, ge=1, description="Hard stop on the number of pages")

    model_config = ConfigDict(use_enum_values=True)


class RequestDef(BaseModel):
    """A named retrieval against the remote API."""

    name: str = Field(..., min_length=1)
    method: HttpMethod = Field(HttpMethod.GET)
    endpoint: str = Field(..., min_length=1, description="Path or URL template")
    body: Optional[Any] = Field(None, description="JSON body template tree")
    headers: Dict[str, str] = Field(default_factory=dict)
    pagination: PaginationPolicy = Field(default_factory=PaginationPolicy)
    scope: Optional[str] = Field(None, description="Auth scope the request requires")

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class TransformDef(BaseModel):
    """A named transform applied to the DataBag."""

    name: str = Field(..., min_length=1)
    kind: TransformKind = Field(TransformKind.EXTENSION)
    extension: str = Field(
        ..., min_length=1, description="Registered function name or 'module:function'"
    )
    source: Optional[str] = Field(
        None, description="DataBag key whose value is passed instead of the whole bag"
    )
    parameters: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(use_enum_values=True, frozen=True)


class TemplateDef(BaseModel):
    """A named view rendered from the DataBag."""

    name: str = Field(..., min_length=1)
    template: Optional[str] = Field(None, description="Inline Jinja2 template")
    file: Optional[str] = Field(None, description="Template file, relative to the config")
    target: Optional[str] = Field(None, description="DataBag key for the artifact")
    format: TemplateFormat = Field(TemplateFormat.TEXT)

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    @model_validator(mode="after")
    def validate_source(self):
        if bool(self.template) == bool(self.file):
            raise ValueError(
                f"Template '{self.name}' must define exactly one of: template, file"
            )
        return self

    @property
    def target_name(self) -> str:
        return self.target or self.name


class ExportDef(BaseModel):
    """Delivery of a named artifact to a sink."""

    name: str = Field(..., min_length=1)
    type: ExportType = Field(...)
    source: str = Field(..., min_length=1, description="DataBag key of the artifact")
    destination: Optional[str] = Field(
        None, description="File path or URL template (file and http sinks)"
    )
    method: HttpMethod = Field(HttpMethod.POST)
    headers: Dict[str, str] = Field(default_factory=dict)
    content_type: Optional[str] = Field(None)
    subject: Optional[str] = Field(None, description="Email subject template")
    recipients: Optional[str] = Field(
        None, description="Comma-separated recipients (email sink)"
    )
    html: bool = Field(True, description="Send email artifact as HTML")

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    @model_validator(mode="after")
    def validate_destination(self):
        if self.type in (ExportType.FILE.value, ExportType.HTTP.value) and not self.destination:
            raise ValueError(f"Export '{self.name}' of type {self.type} requires a destination")
        return self


class ConfigurationSet(BaseModel):
    """Named variables and custom data a job can pull into its rendering context."""

    vars: Dict[str, Any] = Field(default_factory=dict)
    custom_data: Dict[str, Any] = Field(default_factory=dict, alias="customData")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class JobSpec(BaseModel):
    """Immutable job definition: ordered references to stage definitions."""

    key: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    cron: Optional[str] = Field(None, description="Five or six field cron expression")
    requests: List[str] = Field(default_factory=list)
    transforms: List[str] = Field(default_factory=list)
    templates: List[str] = Field(default_factory=list)
    exports: List[str] = Field(default_factory=list)
    configurations: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @field_validator("cron")
    @classmethod
    def blank_cron_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    def summary(self) -> Dict[str, str]:
        """Listing shape used by the control surface."""
        return {"key": self.key, "name": self.name, "cron": self.cron or "no-cron"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO)
    format: LogFormat = Field(LogFormat.KEY_VALUE)

    model_config = ConfigDict(use_enum_values=True)


class AdvancedConfig(BaseModel):
    """Advanced runtime settings."""

    user_agent: str = Field("OpenDataExporter/2.0", min_length=1)
    max_retries: int = Field(3, ge=0, le=10, description="Retries for transient request failures")
    retry_initial_delay: float = Field(1.0, ge=0.0, le=60.0)
    retry_backoff_multiplier: float = Field(2.0, ge=1.0, le=5.0)
    retry_max_delay: float = Field(30.0, ge=0.0, le=300.0)
    run_now_workers: int = Field(4, ge=1, le=64, description="Threads for immediate runs")
    max_concurrent_runs: int = Field(
        3, ge=1, le=32, description="Overlapping scheduled runs allowed per job"
    )

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


def _inject_names(section: Any, field: str) -> Any:
    """Copy each mapping key into the entry under ``field`` unless already set."""
    if not isinstance(section, dict):
        return section
    injected = {}
    for key, value in section.items():
        if isinstance(value, dict):
            value = {field: key, **value}
        injected[key] = value
    return injected


class ExporterConfig(BaseModel):
    """Root configuration object."""

    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    requests: Dict[str, RequestDef] = Field(default_factory=dict)
    transforms: Dict[str, TransformDef] = Field(default_factory=dict)
    templates: Dict[str, TemplateDef] = Field(default_factory=dict)
    exports: Dict[str, ExportDef] = Field(default_factory=dict)
    configurations: Dict[str, ConfigurationSet] = Field(default_factory=dict)
    jobs: Dict[str, JobSpec] = Field(..., min_length=1)
    custom_data: Dict[str, Any] = Field(default_factory=dict, alias="customData")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)

    # Directory relative template files and export paths resolve against
    base_dir: Path = Field(default_factory=Path.cwd, exclude=True)

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def inject_definition_names(cls, data: Any) -> Any:
        """Definitions are keyed by name in the file; mirror the key into the model."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for section in ("requests", "transforms", "templates", "exports"):
            if section in data:
                data[section] = _inject_names(data[section], "name")
        if "jobs" in data:
            jobs = _inject_names(data["jobs"], "key")
            if isinstance(jobs, dict):
                # Jobs without a display name fall back to their key
                jobs = {
                    k: ({"name": k, **v} if isinstance(v, dict) else v)
                    for k, v in jobs.items()
                }
            data["jobs"] = jobs
        return data

    def get_job(self, key: str) -> Optional[JobSpec]:
        return self.jobs.get(key)

    def list_jobs(self, job_keys: Optional[List[str]] = None) -> List[Dict[str, str]]:
        """List jobs as {key, name, cron | 'no-cron'}.

        With job_keys, only those jobs are listed, in the given order; keys
        that name no job are skipped.
        """
        if not job_keys:
            return [job.summary() for job in self.jobs.values()]
        return [self.jobs[key].summary() for key in job_keys if key in self.jobs]
