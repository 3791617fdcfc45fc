"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_LINK_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_CLIENT_IP = "121.11.121.11"
STORE_BACKENDS = ("file", "memory", "none")


class AppConfig(BaseModel):
    """A validated configuration model for the application."""

    # Credential pool
    server_cookies: list[str] = Field(default_factory=list, repr=False)
    store_backend: str = "file"
    store_dir: str = ""

    # Transfer pipeline
    scratch_root: str = "/netdisk"
    max_file_size: int = 150 * 1024 * 1024
    max_files: int = 500
    scan_concurrency: int = 3
    transfer_settle_delay: float = 1.0
    link_propagation_delay: float = 3.0
    user_cleanup_delay: float = 30.0
    link_user_agent: str = DEFAULT_LINK_USER_AGENT
    client_ip: str = DEFAULT_CLIENT_IP

    # Maintenance
    cleanup_batch_size: int = 5
    cleanup_stagger: float = 1.0
    health_stagger: float = 0.2
    health_interval: float = 1800.0
    cleanup_interval: float = 3600.0

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("server_cookies")
    @classmethod
    def validate_cookies(cls, v: list[str]) -> list[str]:
        """Drops blank entries and duplicates while keeping the configured order."""
        return list(dict.fromkeys(c.strip() for c in v if c and c.strip()))

    @field_validator("store_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in STORE_BACKENDS:
            raise ValueError(
                f"store_backend must be one of {', '.join(STORE_BACKENDS)}."
            )
        return v

    @field_validator("scratch_root")
    @classmethod
    def validate_scratch_root(cls, v: str) -> str:
        """The scratch root is deleted wholesale by the cleanup sweep."""
        v = v.rstrip("/")
        if not v.startswith("/") or v.count("/") != 1:
            raise ValueError(
                "scratch_root must be a single top-level directory such as '/netdisk'."
            )
        return v

    @field_validator(
        "max_file_size", "max_files", "scan_concurrency", "cleanup_batch_size"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be a positive integer.")
        return v

    @field_validator(
        "transfer_settle_delay",
        "link_propagation_delay",
        "user_cleanup_delay",
        "cleanup_stagger",
        "health_stagger",
    )
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays cannot be negative.")
        return v

    @model_validator(mode="after")
    def validate_intervals(self) -> "AppConfig":
        """Periodic jobs need a real interval or they would spin."""
        if self.health_interval < 60 or self.cleanup_interval < 60:
            raise ValueError("Maintenance intervals must be at least 60 seconds.")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
