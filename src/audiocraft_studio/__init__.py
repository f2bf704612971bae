"""AudioCraft Studio: subtle audio humanization over an ffmpeg filter graph."""

__version__ = "1.0.0"

SERVICE_NAME = "AudioCraft Studio API"

__all__ = ["__version__", "SERVICE_NAME"]
