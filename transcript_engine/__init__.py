"""
Clinical Transcript Engine - Clinical Audio Transcription Microservice

Transcribes clinical recordings through an ordered chain of speech-to-text
providers and renders a speaker-annotated consultation transcript.
"""

__version__ = "1.0.0"
