"""tooldecoder — converts CAM tool libraries into a milling tool database."""

__version__ = "0.1.0"
