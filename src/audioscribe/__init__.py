"""Audioscribe: audio capture, decoding and transcription pipeline."""

__app_name__ = "Audioscribe"
__version__ = "0.1.0"
