# Infrastructure Package
from .deck_file import JsonDeckRepository

__all__ = ["JsonDeckRepository"]
