"""Loading of label masks from TIFF files."""

from pathlib import Path
from typing import Union

import numpy as np
import tifffile

from cellmeasurement.roi.extraction import MaskFormatError, check_label_image
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


def load_label_mask(path: Union[str, Path]) -> np.ndarray:
    """
    Read a label mask and validate it.

    Args:
        path: TIFF file with a single-channel integer label image

    Returns:
        (H, W) integer label array

    Raises:
        FileNotFoundError: If path does not exist
        MaskFormatError: If the file holds a colour or non-integer image
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Mask file not found: {path}")

    try:
        with tifffile.TiffFile(str(path)) as tif:
            page = tif.pages[0]
            if page.photometric == tifffile.PHOTOMETRIC.RGB:
                raise MaskFormatError(f"{path.name}: RGB images are not supported")
            labels = tif.asarray()
    except tifffile.TiffFileError as e:
        raise MaskFormatError(f"{path.name}: not a readable TIFF ({e})") from e

    try:
        labels = check_label_image(labels)
    except MaskFormatError as e:
        raise MaskFormatError(f"{path.name}: {e}") from e

    logger.info(f"Loaded mask {path.name}: {labels.shape[1]}x{labels.shape[0]}, "
                f"max label {int(labels.max()) if labels.size else 0}")
    return labels
