from __future__ import annotations

from typing import Any, Optional
from pathlib import Path

import numpy as np
import nibabel as nb
import os
from dipy.segment.mask import median_otsu

from krcahpy.core.validation import ConfigurationError, DataError


def nifti_stem(path: str) -> str:
    """File name without the ``.nii`` / ``.nii.gz`` extension."""
    name = Path(path).name
    if name.lower().endswith(".nii.gz"):
        return name[:-7]
    if name.lower().endswith(".nii"):
        return name[:-4]
    return Path(path).stem


def auto_mask_output_path(image_path: str) -> str:
    """Return the output path for an auto-generated mask.

    If the input image is called "ct.nii.gz" or "ct.nii", the mask is saved as
    "ct_auto_mask.nii.gz" in the same directory as the image.
    """

    p = Path(image_path)
    return str(p.with_name(f"{nifti_stem(image_path)}_auto_mask.nii.gz"))


def save_nifti(volume: np.ndarray, out_path: str, *, affine: Any, header: Any = None, dtype: Any = None) -> str:
    """Write ``volume`` as NIfTI, reusing the input geometry. Returns the written path."""

    data = np.asarray(volume)
    if dtype is not None:
        data = data.astype(dtype, copy=False)

    hdr = header.copy() if header is not None else None
    if hdr is not None:
        hdr.set_data_dtype(data.dtype)

    parent = os.path.dirname(os.path.abspath(out_path))
    os.makedirs(parent, exist_ok=True)
    nb.save(nb.Nifti1Image(data, affine, header=hdr), out_path)
    return out_path


def save_auto_mask_nifti(mask: np.ndarray, *, image_path: str, affine: Any, header: Any) -> str:
    """Save an auto-generated 3D mask NIfTI next to the input image.

    Returns the written path.
    """

    # Store as uint8 (0/1).
    return save_nifti((mask > 0).astype(np.uint8), auto_mask_output_path(image_path), affine=affine, header=header)


def load_image_nifti(image_path: str) -> tuple[np.ndarray, Any, Any, tuple[float, float, float]]:
    """Load an intensity NIfTI and return (data, header, affine, spacing).

    - keeps the on-disk dtype (integer CT stays integer)
    - expands 2D images to 3D by inserting a singleton z-dimension
    - squeezes a trailing singleton 4th dimension
    - spacing is the first three header zooms
    """

    img_nifti = nb.load(image_path)
    data = np.asanyarray(img_nifti.dataobj)

    if data.ndim == 4 and data.shape[3] == 1:
        data = data[..., 0]
    if data.ndim == 2:
        data = np.expand_dims(data, axis=2)
    if data.ndim != 3:
        raise DataError(
            f"Expected a 3D intensity volume, got shape {data.shape} from {image_path}.\n"
            f"Bone enhancement runs on single 3D volumes; split 4D series before running."
        )

    header = img_nifti.header
    affine = img_nifti.affine
    zooms = tuple(float(z) for z in header.get_zooms()[:3])
    spacing = zooms + (1.0,) * (3 - len(zooms))

    return data, header, affine, spacing


def resolve_mask(
    image: np.ndarray,
    *,
    mask_path: Optional[str],
) -> tuple[Optional[np.ndarray], str]:
    """Resolve the estimation mask for ``image``.

    Returns
    -------
    mask:
        Label volume on the image grid, or None when every voxel participates.
    mask_source:
        One of: file | auto | none
    """

    raw = str(mask_path).strip() if mask_path else ''

    if raw.lower() == 'auto':
        work = np.asarray(image, dtype=np.float64)
        _, mask = median_otsu(work, median_radius=4, numpass=4, dilate=1)
        return mask.astype(np.uint8), 'auto'

    if raw:
        if not os.path.exists(raw):
            raise ConfigurationError(f"Mask file not found: {raw}")
        mask = np.asanyarray(nb.load(raw).dataobj)
        if mask.ndim == 4 and mask.shape[3] == 1:
            mask = mask[..., 0]
        if mask.ndim == 2:
            mask = np.expand_dims(mask, axis=2)
        if tuple(mask.shape) != tuple(image.shape):
            raise ConfigurationError(
                f"Mask shape {tuple(mask.shape)} does not match image shape {tuple(image.shape)}.\n"
                f"The mask must be defined on the same voxel grid as the image."
            )
        return mask, 'file'

    return None, 'none'
