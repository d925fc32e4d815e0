"""Abstract base classes for tool library parsers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from tooldecoder.config import LimitsConfig
from tooldecoder.exceptions import ParseError

if TYPE_CHECKING:
    from pathlib import Path

    from tooldecoder.types import IntermediateTool

__all__ = ["BaseParser", "BinaryParser"]

logger = logging.getLogger(__name__)


class BaseParser(ABC):
    """Base class for all tool library parsers.

    Subclasses must implement ``parse`` and ``supported_extensions``.
    The ``can_parse`` helper checks file extension membership.
    """

    format_name: ClassVar[str] = ""

    def __init__(self, max_file_size: int = LimitsConfig.max_file_size) -> None:
        self.max_file_size = max_file_size

    @abstractmethod
    def parse(self, path: Path) -> list[IntermediateTool]:
        """Parse a tool library file into intermediate tools.

        Args:
            path: Path to the tool library.

        Returns:
            Tools in source order, compatible or not.

        Raises:
            ParseError: If the file cannot be read or decoded.
        """

    @abstractmethod
    def supported_extensions(self) -> frozenset[str]:
        """Return the set of file extensions this parser handles.

        Extensions should include the leading dot, e.g. ``{".tdb"}``.
        """

    def can_parse(self, path: Path) -> bool:
        """Check whether this parser can handle the given file."""
        return path.suffix.lower() in self.supported_extensions()

    def _check_file(self, path: Path) -> None:
        """Reject missing files and files over the size limit."""
        if not path.is_file():
            raise ParseError(f"{self.format_name} file not found: {path.name}")

        file_size = path.stat().st_size
        if file_size > self.max_file_size:
            msg = (
                f"{self.format_name} file {path.name} ({file_size} bytes) "
                f"exceeds maximum size ({self.max_file_size} bytes)"
            )
            raise ParseError(msg)


class BinaryParser(BaseParser):
    """Parser for formats decoded from a single in-memory byte buffer."""

    def parse(self, path: Path) -> list[IntermediateTool]:
        self._check_file(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ParseError(f"Failed to read {path.name}: {e}") from e

        logger.info("Parsing %s file: %s (%d bytes)", self.format_name, path, len(data))
        tools = self.parse_bytes(data)
        logger.info(
            "Parsed %s: %d tools (%d compatible)",
            path.name,
            len(tools),
            sum(1 for t in tools if t.compatible),
        )
        return tools

    @abstractmethod
    def parse_bytes(self, data: bytes) -> list[IntermediateTool]:
        """Decode tools from the raw file contents."""
