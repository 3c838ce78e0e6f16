"""
FluxoScribe app built with FastAPI, exposing
- an index.html UI,
- a session API that walks one uploaded audio/video file through
  encode, transcription and display,
- and a single request to Gemini that returns the transcript.
"""

__version__ = "0.1.0"
