"""Speech synthesis components.

This package maps speakers to voices; `synthesizer` renders attributed lines.
"""

from .voices import VoiceResolver, voice_for_attributes

__all__ = ["VoiceResolver", "voice_for_attributes"]
