"""
Mileva gateway package.

Provides:
- Native generation routes proxied to a local Ollama server
- OpenAI-compatible chat/completion emulation on top of the same server
- An optional pass-through to the Gemini cloud API
"""

__version__ = "1.0.0"
