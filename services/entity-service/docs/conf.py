"""Sphinx configuration for the Entity Service documentation."""

from __future__ import annotations

import os
import sys
from datetime import datetime

SERVICE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, SERVICE_DIR)


project = "Entity Service"
author = "Formation Platform Team"
copyright = f"{datetime.now():%Y}, {author}"
release = "0.1.0"
version = ".".join(release.split(".")[:2])

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
]

# drivers are not needed to render docstrings
autodoc_mock_imports = ["psycopg", "psycopg_pool"]
autodoc_typehints = "description"
autodoc_member_order = "bysource"
napoleon_google_docstring = False
napoleon_numpy_docstring = True

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "redis": ("https://redis-py.readthedocs.io/en/stable/", None),
}

exclude_patterns: list[str] = ["_build"]

html_theme = "alabaster"
html_title = f"{project} {release}"
