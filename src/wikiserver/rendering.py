"""Markdown and HTML rendering collaborators.

Thin wrappers: Python-Markdown turns page source into HTML, Jinja2
(through FastAPI's Jinja2Templates) renders the UI pages.
"""

from pathlib import Path

import markdown
from fastapi.templating import Jinja2Templates

TEMPLATES_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

_EXTENSIONS = ["fenced_code", "tables"]


def render_markdown(source: str) -> str:
    return markdown.markdown(source, extensions=_EXTENSIONS)
