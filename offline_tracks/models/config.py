"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

STORE_NAME = "offline-tracks"
STORE_VERSION = 1
COLLECTION_BLOBS = "blobs"
COLLECTION_POSITIONS = "positions"
STORE_COLLECTIONS = (COLLECTION_BLOBS, COLLECTION_POSITIONS)

MIN_CHUNK_SIZE = 4096  # 4 KB
MAX_CHUNK_SIZE = 4194304  # 4 MB


class Theme(BaseModel):
    """Palette and spacing handed to the renderers."""

    main_color: str = "cyan"
    secondary_color: str = "magenta"
    text_color: str = "white"
    padding: int = 1

    @field_validator("padding")
    @classmethod
    def validate_padding(cls, v: int) -> int:
        if v < 0 or v > 8:
            raise ValueError("Padding must be between 0 and 8.")
        return v


class PlayerConfig(BaseModel):
    """A validated configuration model for the application."""

    # Storage
    store_dir: str
    store_name: str = STORE_NAME
    store_version: int = STORE_VERSION

    # Download Settings
    chunk_size: int = 65536
    connect_timeout: float = 15.0
    read_timeout: float = 90.0
    download_timeout: float = 0.0
    await_payload_write: bool = True
    confirm_downloads: bool = True

    # Playback
    tick_interval: float = 0.25

    theme: Theme = Field(default_factory=Theme)

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("store_dir", "store_name")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Store directory and name cannot be empty.")
        return v

    @field_validator("store_version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Store version must be a positive integer.")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Ensures a reasonable download chunk size."""
        if v < MIN_CHUNK_SIZE or v > MAX_CHUNK_SIZE:
            raise ValueError(
                f"Chunk size must be between {MIN_CHUNK_SIZE} and {MAX_CHUNK_SIZE} bytes."
            )
        return v

    @field_validator("connect_timeout", "read_timeout", "download_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Timeouts cannot be negative (use 0 to disable).")
        return v

    @model_validator(mode="after")
    def validate_tick_interval(self) -> "PlayerConfig":
        """Checks that the playback clock ticks at a sane rate."""
        if not 0.01 <= self.tick_interval <= 5.0:
            raise ValueError("Tick interval must be between 0.01 and 5 seconds.")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI DEFAULT section."""
        internal_fields = {"config_path", "theme"}
        return {key for key in cls.model_fields if key not in internal_fields}
