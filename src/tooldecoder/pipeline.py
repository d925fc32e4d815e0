"""Pipeline orchestrator for tooldecoder.

Composes detect → parse → convert for one tool library at a time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tooldecoder.convert import convert_tools
from tooldecoder.exceptions import PipelineError, ToolDecoderError
from tooldecoder.ingest import detect_file_type, get_parser, require_parser_name
from tooldecoder.types import ConversionStats

if TYPE_CHECKING:
    from pathlib import Path

    from tooldecoder.config import ConverterDefaults, ToolDecoderConfig
    from tooldecoder.ingest.base import BaseParser
    from tooldecoder.ingest.detect import FileInfo
    from tooldecoder.types import ConversionResult, IntermediateTool

__all__ = ["ConversionPipeline", "ParsedFile"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedFile:
    """A tool library after detection and parsing, before conversion."""

    info: FileInfo
    tools: list[IntermediateTool]
    stats: ConversionStats


class ConversionPipeline:
    """Turns a tool library file into a target document.

    The pipeline keeps no per-file state, so one instance can serve any
    number of files. The parser lookup is injectable for tests.

    Usage::

        pipeline = ConversionPipeline(config)
        parsed = pipeline.inspect(Path("library.tdb"))
        result = pipeline.convert(Path("library.tdb"))
    """

    def __init__(
        self,
        config: ToolDecoderConfig,
        parser_factory: Callable[..., BaseParser] = get_parser,
    ) -> None:
        self.config = config
        self.parser_factory = parser_factory

    def inspect(self, path: Path) -> ParsedFile:
        """Detect the format of *path* and parse it.

        Raises:
            UnsupportedFormatError: If no parser handles the file.
            ParseError: If the file cannot be read or decoded.
            PipelineError: On any other failure.
        """
        try:
            info = detect_file_type(path)
            parser_name = require_parser_name(info)
            logger.info("Processing %s as %s", path, info.format_name)

            parser = self.parser_factory(
                parser_name, max_file_size=self.config.limits.max_file_size
            )
            tools = parser.parse(path)
            if not tools:
                logger.warning("No tools found in %s", path)

            return ParsedFile(info=info, tools=tools, stats=ConversionStats.from_tools(tools))

        except ToolDecoderError:
            raise
        except Exception as e:
            raise PipelineError(f"Pipeline failed processing {path}: {e}") from e

    def convert(self, path: Path, defaults: ConverterDefaults | None = None) -> ConversionResult:
        """Parse *path* and build its target document.

        Args:
            path: Tool library to convert.
            defaults: Converter overrides; ``config.defaults`` when omitted.
        """
        parsed = self.inspect(path)
        try:
            return convert_tools(parsed.tools, defaults or self.config.defaults)
        except ToolDecoderError:
            raise
        except Exception as e:
            raise PipelineError(f"Pipeline failed converting {path}: {e}") from e
