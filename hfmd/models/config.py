"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_ENDPOINT = "https://huggingface.co"

# Worker cap applied when none is configured and the selection is large
DEFAULT_MAX_WORKERS = 8
# Selections up to this size start every transfer at once when no cap is set
UNBOUNDED_SELECTION_LIMIT = 16

MIN_CHUNK_SIZE = 4096  # 4 KB
MAX_CHUNK_SIZE = 8388608  # 8 MB


class DownloadConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Hub access
    endpoint: str = DEFAULT_ENDPOINT
    token: str = ""

    # Download Settings
    revision: str = "main"
    output_dir: str = "."
    max_workers: int | None = None
    chunk_size: int = 65536
    max_attempts: int = 3
    base_delay: float = 1.5
    durable_writes: bool = True

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Requires an http(s) URL and drops any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Endpoint must be an http:// or https:// URL.")
        return v.rstrip("/")

    @field_validator("revision")
    @classmethod
    def validate_revision(cls, v: str) -> str:
        if not v:
            raise ValueError("Revision cannot be empty.")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int | None) -> int | None:
        """Ensures a reasonable number of workers."""
        if v is not None and (v < 1 or v > 64):
            raise ValueError("Max workers must be between 1 and 64.")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < MIN_CHUNK_SIZE or v > MAX_CHUNK_SIZE:
            raise ValueError(
                f"Chunk size must be between {MIN_CHUNK_SIZE} and {MAX_CHUNK_SIZE} bytes."
            )
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Max attempts must be between 1 and 10.")
        return v

    @field_validator("base_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Base delay cannot be negative.")
        return v

    def effective_workers(self, selection_size: int) -> int | None:
        """
        Returns the concurrency cap for a selection, or None for no cap.

        Without an explicit setting, small selections start every file at
        once and larger ones fall back to DEFAULT_MAX_WORKERS.
        """
        if self.max_workers is not None:
            return self.max_workers
        if selection_size <= UNBOUNDED_SELECTION_LIMIT:
            return None
        return DEFAULT_MAX_WORKERS

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
