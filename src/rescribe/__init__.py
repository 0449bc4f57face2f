"""Re-derive transcripts and speaker diarization for recorded sessions."""

__version__ = "0.1.0"
