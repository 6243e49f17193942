"""autoblog: multi-stage Gemini blog post generation pipeline."""

__version__ = "0.1.0"
