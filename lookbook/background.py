"""Background removal with rembg.

The cut-out is returned as a transparent PNG.  Busy product photos
occasionally lose most of the garment to the mask; when the opaque area
falls below a threshold the original photo is used instead, so the item is
at worst padded onto gray rather than erased.
"""

from __future__ import annotations

import logging

import numpy as np

from lookbook.config import PipelineConfig
from lookbook.image_processor import open_image

logger = logging.getLogger(__name__)

# Alpha values above this count as foreground
_ALPHA_THRESHOLD = 16


def foreground_fraction(png_bytes: bytes) -> float:
    """Fraction of pixels whose alpha is above _ALPHA_THRESHOLD."""
    img = open_image(png_bytes).convert("RGBA")
    alpha = np.asarray(img.getchannel("A"))
    if alpha.size == 0:
        return 0.0
    return float(np.count_nonzero(alpha > _ALPHA_THRESHOLD)) / alpha.size


class BackgroundRemover:
    """Wraps a rembg session.

    Args:
        config:    Pipeline configuration (damage threshold).
        session:   A rembg session; created with ``rembg.new_session`` when
                   omitted, which downloads the model on first use.
        remove_fn: Callable with the signature of ``rembg.remove``.
    """

    def __init__(self, config: PipelineConfig, session=None, remove_fn=None,
                 model: str = "u2net"):
        if remove_fn is None or session is None:
            import rembg

            remove_fn = remove_fn or rembg.remove
            session = session if session is not None else rembg.new_session(model)
        self._remove = remove_fn
        self.session = session
        self.min_foreground = config.min_foreground_fraction

    def remove(self, data: bytes) -> bytes:
        """Return *data* with its background cut out (PNG bytes).

        Falls back to the untouched input when the mask would leave less
        than ``min_foreground_fraction`` of the image visible.
        """
        cutout = self._remove(data, session=self.session)
        fraction = foreground_fraction(cutout)
        if fraction < self.min_foreground:
            logger.warning(
                "Background removal kept only %.1f%% of the image, using original",
                fraction * 100,
            )
            return data
        logger.debug("Background removed (%.1f%% foreground)", fraction * 100)
        return cutout
