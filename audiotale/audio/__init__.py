"""Audio assembly components: media tooling, background score, and foley.

`ambience` and `foley` are imported directly to keep provider imports lazy.
"""

from .media import MediaTool, MediaToolError, MixInput

__all__ = ["MediaTool", "MediaToolError", "MixInput"]
