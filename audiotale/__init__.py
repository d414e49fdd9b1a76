"""Top-level package for audiotale.

This package turns ebooks and text documents into multi-voice audiobooks with
mood-driven background music and foley. The composition entry point is
`PipelineContext`.
"""

from .context import PipelineContext

__all__ = ["PipelineContext", "__version__"]

__version__ = "0.1.0"
