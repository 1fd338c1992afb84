from __future__ import annotations

import os
import sys
from datetime import datetime

# Repo root on sys.path so autodoc finds krcahpy without installation.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

project = "KrcahPy"
author = "The KrcahPy Development Team"
copyright = f"{datetime.now().year}, {author}"

# Numerical stack is mocked so the docs build without a GPU-capable torch.
autodoc_mock_imports = [
    "torch",
    "dipy",
    "nibabel",
    "numpy",
    "pandas",
    "scipy",
    "joblib",
    "tqdm",
    "psutil",
]

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx.ext.intersphinx",
]

autodoc_member_order = "bysource"
napoleon_numpy_docstring = True

templates_path = ["_templates"]
exclude_patterns = []

html_theme = "sphinx_rtd_theme"
html_static_path = ["_static"]

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable", None),
}
