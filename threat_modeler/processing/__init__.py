"""Input preprocessing."""

from .images import ImageProcessingError, fit_within, load_image_file, prepare_image

__all__ = ["ImageProcessingError", "fit_within", "load_image_file", "prepare_image"]
