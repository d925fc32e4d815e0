"""Custom exception hierarchy for tooldecoder."""

__all__ = [
    "ConfigError",
    "ConvertError",
    "MalformedRecordError",
    "ParseError",
    "PipelineError",
    "ToolDecoderError",
    "UnsupportedFormatError",
]


class ToolDecoderError(Exception):
    """Base exception for all tooldecoder errors."""


class ConfigError(ToolDecoderError):
    """Raised when configuration loading or validation fails."""


class UnsupportedFormatError(ToolDecoderError):
    """Raised when no parser can handle a file."""


class ParseError(ToolDecoderError):
    """Raised when a tool library cannot be read or decoded."""


class MalformedRecordError(ParseError):
    """Raised when a strictly structured record stream is violated."""


class ConvertError(ToolDecoderError):
    """Raised when the target document cannot be written or read."""


class PipelineError(ToolDecoderError):
    """Raised when pipeline orchestration fails."""
