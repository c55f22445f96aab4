"""Pydantic models for configuration."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class ConcurrencyConfig(BaseModel):
    """Concurrency ceilings. ``None`` means derive from the host probe."""

    job_concurrency: Optional[int] = Field(
        default=None, ge=1, description="Max jobs in processing state at once"
    )
    file_concurrency: Optional[int] = Field(
        default=None, ge=1, description="Max files processed at once within one job"
    )
    encode_workers: Optional[int] = Field(
        default=None, ge=1, description="Threads in the image encode pool"
    )
    memory_headroom_fraction: float = Field(
        default=0.7,
        gt=0.0,
        le=1.0,
        description="Fraction of free host memory the process may use before backing off",
    )
    memory_backoff_s: float = Field(
        default=0.5, ge=0.0, description="Sleep between memory headroom checks"
    )
    memory_backoff_max_waits: int = Field(
        default=20, ge=0, description="Give up waiting for headroom after this many sleeps"
    )


class LimitsConfig(BaseModel):
    """Per-file validation limits."""

    max_file_size_bytes: int = Field(
        default=50 * 1024 * 1024, gt=0, description="Maximum raw upload size (50MB)"
    )
    max_megapixels: float = Field(
        default=50.0, gt=0.0, description="Maximum decoded pixel count in megapixels"
    )
    allowed_mime_types: List[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/jpg", "image/png", "image/webp"],
        description="Accepted declared MIME types",
    )
    encode_timeout_s: float = Field(
        default=30.0, gt=0.0, description="Timeout for each variant encode"
    )


class VariantSpec(BaseModel):
    """Target geometry and quality for one derived variant."""

    role: Literal["original", "medium", "thumbnail"]
    max_width: int = Field(gt=0)
    max_height: int = Field(gt=0)
    quality: int = Field(default=85, ge=1, le=95)
    crop: bool = Field(default=False, description="Centre-crop to exact size instead of fit-inside")


def _default_variants() -> List[VariantSpec]:
    return [
        VariantSpec(role="original", max_width=2048, max_height=2048, quality=85),
        VariantSpec(role="medium", max_width=1024, max_height=1024, quality=80),
        VariantSpec(role="thumbnail", max_width=300, max_height=300, quality=80, crop=True),
    ]


class QueueConfig(BaseModel):
    """Queue and retry behaviour."""

    max_attempts: int = Field(default=3, ge=1, description="Attempts per job before failing")
    max_queue_depth: Optional[int] = Field(
        default=1000, ge=0, description="Waiting jobs limit (0 or null = unbounded)"
    )
    retry_policy: Literal["classified", "all"] = Field(
        default="classified",
        description="classified: only transient errors retry; all: every job error retries",
    )
    fail_when_all_files_fail: bool = Field(
        default=False, description="Mark a job failed when none of its files succeeded"
    )
    nudge_interval_s: Optional[float] = Field(
        default=None, gt=0.0, description="Periodic dispatch wake-up (safety net, off by default)"
    )
    shutdown_grace_s: float = Field(
        default=30.0, ge=0.0, description="Time to let in-flight jobs finish on shutdown"
    )
    keep_finished: int = Field(
        default=500, ge=1, description="Completed/failed jobs retained for stats and lookup"
    )


class StorageConfig(BaseModel):
    """Blob storage backend selection."""

    backend: Literal["none", "local", "s3"] = Field(
        default="none", description="none = base64 fallback mode"
    )
    upload_timeout_s: float = Field(default=60.0, gt=0.0)
    local_root: str = Field(default="media", description="Directory for the local backend")
    public_base_url: str = Field(
        default="http://localhost:8000/media", description="URL prefix for locally stored blobs"
    )
    s3_bucket: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None


class DatabaseConfig(BaseModel):
    url: str = Field(default="sqlite:///./photo_ingest.db", description="Catalog database URL")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: Optional[str] = Field(default=None, description="Optional log file path")


class IngestConfig(BaseModel):
    """Complete application configuration with validation."""

    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    variants: List[VariantSpec] = Field(default_factory=_default_variants)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("variants")
    @classmethod
    def one_spec_per_role(cls, v: List[VariantSpec]) -> List[VariantSpec]:
        """Each of original/medium/thumbnail must be declared exactly once."""
        roles = sorted(spec.role for spec in v)
        if roles != ["medium", "original", "thumbnail"]:
            raise ValueError(f"variants must define original, medium and thumbnail once each, got {roles}")
        return v

    @classmethod
    def from_dict(cls, data: dict) -> "IngestConfig":
        """Create config from nested dict (YAML)."""
        return cls(**data)

    def variant(self, role: str) -> VariantSpec:
        for spec in self.variants:
            if spec.role == role:
                return spec
        raise KeyError(role)

    def merge_cli_overrides(self, cli_args: dict) -> "IngestConfig":
        """Apply CLI overrides and return new config instance."""
        config_dict = self.model_dump()

        if cli_args.get("job_concurrency") is not None:
            config_dict["concurrency"]["job_concurrency"] = cli_args["job_concurrency"]
        if cli_args.get("file_concurrency") is not None:
            config_dict["concurrency"]["file_concurrency"] = cli_args["file_concurrency"]
        if cli_args.get("max_attempts") is not None:
            config_dict["queue"]["max_attempts"] = cli_args["max_attempts"]
        if cli_args.get("storage") is not None:
            config_dict["storage"]["backend"] = cli_args["storage"]
        if cli_args.get("database_url") is not None:
            config_dict["database"]["url"] = cli_args["database_url"]
        if cli_args.get("log_level") is not None:
            config_dict["logging"]["level"] = cli_args["log_level"]

        return IngestConfig.from_dict(config_dict)
