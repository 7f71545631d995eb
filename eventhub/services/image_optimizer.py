"""
Image Optimization Service
Downscale event images and strip their metadata before upload
"""

from io import BytesIO
from typing import Tuple

from PIL import Image


class ImageOptimizer:
    """Resize + re-encode so uploaded banners carry no EXIF"""

    MAX_DIMENSION = 1600  # Max width or height

    @staticmethod
    def optimize(image_bytes: bytes) -> Tuple[bytes, str]:
        """
        Re-encode an image, shrinking it to fit MAX_DIMENSION.

        Transparent images stay PNG, everything else becomes JPEG.

        Args:
            image_bytes: Original image bytes

        Returns:
            Tuple of (optimized_bytes, content_type)

        Raises:
            PIL.UnidentifiedImageError: If the bytes are not an image
        """
        img = Image.open(BytesIO(image_bytes))
        img.load()

        has_transparency = img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info)

        # Keeps aspect ratio
        img.thumbnail((ImageOptimizer.MAX_DIMENSION, ImageOptimizer.MAX_DIMENSION), Image.Resampling.LANCZOS)

        output = BytesIO()
        if has_transparency:
            img.save(output, format='PNG', optimize=True)
            return output.getvalue(), "image/png"

        if img.mode != 'RGB':
            img = img.convert('RGB')
        img.save(output, format='JPEG', quality=88, optimize=True)
        return output.getvalue(), "image/jpeg"


# Singleton
image_optimizer = ImageOptimizer()
