"""Bundled template loading and rendering helpers."""

from __future__ import annotations

from importlib import resources
from typing import Mapping

RESTORE_GUIDE_TEMPLATE = "RESTORE-GUIDE.md.tmpl"


def read_template(name: str) -> str:
    """Read a bundled template file from the package.

    Example:
        >>> "{{ user }}" in read_template(RESTORE_GUIDE_TEMPLATE)
        True
    """
    return (
        resources.files("carryover")
        .joinpath("templates")
        .joinpath(name)
        .read_text(encoding="utf-8")
    )


def render_template(template: str, variables: Mapping[str, str]) -> str:
    """Render a template using a simple {{ key }} substitution.

    Example:
        >>> render_template("hi {{ name }}", {"name": "there"})
        'hi there'
    """
    rendered = template
    for key, value in variables.items():
        rendered = rendered.replace(f"{{{{ {key} }}}}", value)
    return rendered
