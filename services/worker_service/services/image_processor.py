import io
from typing import Dict, Tuple
from PIL import Image, UnidentifiedImageError
import logging

from ...common.errors import DecodeError

logger = logging.getLogger(__name__)

RESAMPLE_FILTERS: Dict[str, Image.Resampling] = {
    'nearest': Image.Resampling.NEAREST,
    'bilinear': Image.Resampling.BILINEAR,
    'triangle': Image.Resampling.BILINEAR,
    'bicubic': Image.Resampling.BICUBIC,
    'catmullrom': Image.Resampling.BICUBIC,
    'lanczos': Image.Resampling.LANCZOS,
}


class ImageProcessor:
    """Turns source image bytes into thumbnail bytes: decode, resize, encode"""

    def __init__(
        self,
        width: int = 100,
        height: int = 100,
        output_format: str = "JPEG",
        quality: int = 85,
        resample: str = "bilinear",
        upscale: bool = True,
    ):
        if resample.lower() not in RESAMPLE_FILTERS:
            raise ValueError(f"Unknown resample filter: {resample}")
        self.width = width
        self.height = height
        self.output_format = output_format.upper()
        self.quality = quality
        self.resample = RESAMPLE_FILTERS[resample.lower()]
        self.upscale = upscale

    def decode(self, data: bytes) -> Image.Image:
        """Decode image bytes, raising DecodeError for corrupt or unsupported data"""
        if not data:
            raise DecodeError("empty image data")
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise DecodeError(str(e), {'size_bytes': len(data)}) from e

        logger.debug(f"Decoded {img.format} image {img.size[0]}x{img.size[1]} mode {img.mode}")
        return img

    def fit_size(self, size: Tuple[int, int]) -> Tuple[int, int]:
        """Largest size within the target box that keeps the aspect ratio of size"""
        original_width, original_height = size
        scale = min(self.width / original_width, self.height / original_height)
        if not self.upscale:
            scale = min(scale, 1.0)
        return (
            max(1, round(original_width * scale)),
            max(1, round(original_height * scale)),
        )

    def resize(self, img: Image.Image) -> Image.Image:
        """Resize to fit within the target box, preserving aspect ratio"""
        new_size = self.fit_size(img.size)
        if new_size == img.size:
            return img.copy()
        return img.resize(new_size, self.resample)

    def encode(self, img: Image.Image) -> bytes:
        """Encode to the output format into an in-memory buffer"""
        save_kwargs = {'format': self.output_format}

        if self.output_format == 'JPEG':
            img = self._flatten(img)
            save_kwargs.update({'quality': self.quality, 'optimize': True})
        elif self.output_format == 'WEBP':
            save_kwargs.update({'quality': self.quality})
        elif self.output_format == 'PNG':
            save_kwargs['optimize'] = True

        buffer = io.BytesIO()
        img.save(buffer, **save_kwargs)
        return buffer.getvalue()

    def render(self, img: Image.Image) -> bytes:
        """Resize a decoded image and encode it as thumbnail bytes"""
        return self.encode(self.resize(img))

    @staticmethod
    def _flatten(img: Image.Image) -> Image.Image:
        # JPEG has no alpha channel, composite onto white
        if img.mode in ('RGBA', 'LA', 'P'):
            if img.mode == 'P':
                img = img.convert('RGBA')
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            return background
        if img.mode not in ('RGB', 'L'):
            return img.convert('RGB')
        return img
