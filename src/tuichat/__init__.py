# src/tuichat/__init__.py
"""tuichat: a small terminal chat protocol with an asyncio client and server."""

__version__ = "0.1.0"
