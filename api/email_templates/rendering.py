"""
`{{name}}` placeholder handling shared by templates, campaigns and automation.
"""

from __future__ import annotations

import html
import re
from typing import Any, Mapping

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_.]*)\s*\}\}")


def extract_variables(*texts: str | None) -> list[str]:
    """
    Placeholder names in first-seen order, without duplicates.
    """
    names: list[str] = []
    for text in texts:
        for match in PLACEHOLDER_RE.finditer(text or ""):
            if match.group(1) not in names:
                names.append(match.group(1))
    return names


def _lookup(variables: Mapping[str, Any], name: str) -> Any:
    # Dotted names walk nested mappings: {{contact.first_name}}.
    if name in variables:
        return variables[name]
    current: Any = variables
    for part in name.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def render(text: str | None, variables: Mapping[str, Any], *, escape: bool = False) -> tuple[str, list[str]]:
    """
    Substitute placeholders; unknown ones are left in place and reported.
    """
    missing: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        value = _lookup(variables, match.group(1))
        if value is None:
            if match.group(1) not in missing:
                missing.append(match.group(1))
            return match.group(0)
        value_text = str(value)
        return html.escape(value_text) if escape else value_text

    return PLACEHOLDER_RE.sub(_replace, text or ""), missing


def contact_variables(contact: Mapping[str, Any]) -> dict[str, Any]:
    """
    Variables available to campaign emails for one recipient.
    """
    first = str(contact.get("first_name") or "")
    last = str(contact.get("last_name") or "")
    return {
        "first_name": first,
        "last_name": last,
        "full_name": f"{first} {last}".strip(),
        "email": contact.get("email") or "",
        "company": contact.get("company") or "",
        "position": contact.get("position") or "",
        "country": contact.get("country") or "",
        "city": contact.get("city") or "",
    }


SAMPLE_VARIABLES: dict[str, str] = {
    "first_name": "Alex",
    "last_name": "Rivera",
    "full_name": "Alex Rivera",
    "email": "alex.rivera@example.com",
    "company": "Sample Records",
    "position": "A&R Manager",
    "country": "United States",
    "city": "Nashville",
}
