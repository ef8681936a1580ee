"""
LinguaComic — Source loading.

Verifies an uploaded textbook photo and works out its MIME type before it
is handed to the analyzer.
"""

import io
import logging
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


def load_source_image(source: Union[bytes, str, Path]) -> tuple[bytes, str]:
    """
    Load and verify an image.

    Args:
        source: Raw bytes or a path to an image file

    Returns:
        (bytes, mime_type) ready for ContentAnalyzer.analyze

    Raises:
        ValueError if the data is not a readable image
    """
    if isinstance(source, (str, Path)):
        data = Path(source).read_bytes()
    else:
        data = bytes(source)

    if not data:
        raise ValueError("Empty image upload")

    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Not a readable image: {e}") from e

    mime_type = Image.MIME.get(fmt or "", "image/png")
    logger.info(f"Source image: {fmt} ({len(data)} bytes)")
    return data, mime_type
