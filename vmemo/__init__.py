"""
VMemo - voice memos turned into structured markdown documents.

Records (or accepts) audio, transcribes it with the external voxmlx tool,
formats the transcript with an LLM provider and renders it into a
markdown template.
"""

__version__ = "1.0.0"
__description__ = "Voice recording, transcription, and AI-powered document formatting"
