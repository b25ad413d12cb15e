"""
pairup: table storage backend for the Teams pair-up app

Typed repositories over Azure Table Storage for team and user metadata.
"""

__version__ = "0.1.0"

from .repositories.base import BaseRepository

__all__ = ["BaseRepository", "__version__"]
