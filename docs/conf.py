import os
import sys
from datetime import date

# Paths -----------------------------------------------------------------------
PROJECT_ROOT = os.path.abspath("..")
PACKAGE_DIR = os.path.join(PROJECT_ROOT, "habit_reminders")
sys.path.insert(0, PROJECT_ROOT)

# Project information ---------------------------------------------------------
project = "Habit Reminders"
author = "Habit Reminders contributors"
copyright = f"{date.today().year}, {author}"
root_doc = "index"

# General configuration -------------------------------------------------------
extensions = [
    "myst_parser",
    "sphinx.ext.napoleon",
    "autoapi.extension",
]

exclude_patterns = ["_build"]

myst_enable_extensions = ["colon_fence"]

# HTML output -----------------------------------------------------------------
html_theme = "sphinx_rtd_theme"

# AutoAPI (code reference) ----------------------------------------------------
# The package has no __init__.py files, so walk it as implicit namespaces.
autoapi_type = "python"
autoapi_dirs = [PACKAGE_DIR]
autoapi_python_use_implicit_namespaces = True
autoapi_root = "reference"
autoapi_add_toctree_entry = False
autoapi_ignore = ["*/data/*"]
autoapi_options = ["members", "undoc-members", "show-module-summary"]
