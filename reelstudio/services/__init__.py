"""Application-level services."""

from .image_service import ImageService

__all__ = [
    "ImageService",
]
