"""KrcahPy public package.

Bone structure enhancement for volumetric images following Krcah et al.
The canonical import root is `krcahpy`.
"""

from __future__ import annotations

from ._version import __version__

__all__ = ["__version__"]
