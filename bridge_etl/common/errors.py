"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration, including credentials."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that end a run."""

    error_code = "STAGE_ERROR"


class EmptySourceError(StageError):
    """Raised when the source yields no usable records, so nothing may be loaded."""

    error_code = "EMPTY_SOURCE"


class StoreError(StageError):
    """Raised when the destination store rejects a write or procedure call."""

    error_code = "STORE_ERROR"


class SourceDecodeError(StageError):
    """Raised when a source response is not a usable feature collection."""

    error_code = "SOURCE_DECODE_ERROR"
