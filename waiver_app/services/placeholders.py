"""Merge field placeholder recognition and substitution.

Waiver text references merge fields as ``<key>`` tokens, e.g.
``<academy_name>``. This module owns the one definition of that token shape;
merge field validation, the authoring preview and the PDF renderer all import
it from here.

Because waiver content is stored as markup, a bare tag such as ``<p>`` or
``<strong>`` has the same shape as a placeholder. A token is markup when its
name is in ``RESERVED_TAG_NAMES`` (the standalone elements the renderer
interprets, which cannot be merge field keys) or when the same content also
closes it, as in ``<strong>...</strong>``. Markup tokens are never
substituted and never reported as unresolved.
"""
from __future__ import annotations

import enum
import html
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import bleach

from waiver_app.exceptions import ValidationException

MERGE_FIELD_KEY_MAX_LENGTH = 50
_KEY = r"[a-z][a-z0-9_]*"

MERGE_FIELD_KEY_RE = re.compile(rf"^{_KEY}$")
PLACEHOLDER_RE = re.compile(rf"<({_KEY})>")

CLOSING_TAG_RE = re.compile(rf"</({_KEY})\s*>")

RESERVED_TAG_NAMES: frozenset[str] = frozenset({"p", "br", "hr"})

# Markup kept by the authoring preview
_PREVIEW_TAGS: set[str] = {
    "p", "br", "hr", "strong", "em", "b", "i", "u", "s", "del", "blockquote",
    "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "li", "span",
}
_PREVIEW_ATTRS = {"span": ["class"]}


class UnresolvedPolicy(str, enum.Enum):
    """What happens to a placeholder with neither an override nor a default."""

    KEEP = "keep"    # leave the token verbatim and report it
    BLANK = "blank"  # drop the token and report it
    ERROR = "error"  # refuse to resolve

    @classmethod
    def from_setting(cls, value: Optional[str]) -> "UnresolvedPolicy":
        try:
            return cls((value or cls.KEEP.value).lower())
        except ValueError:
            return cls.KEEP


@dataclass
class ResolutionResult:
    resolved_content: str
    unresolved_keys: List[str] = field(default_factory=list)


def markup_tag_names(content: str) -> frozenset[str]:
    """Names ``content`` uses as markup: the reserved names plus every element it closes."""
    closed = {m.group(1) for m in CLOSING_TAG_RE.finditer(content or "")}
    return RESERVED_TAG_NAMES | closed


def is_placeholder_key(key: str) -> bool:
    return bool(MERGE_FIELD_KEY_RE.match(key)) and key not in RESERVED_TAG_NAMES


def merge_field_key_error(key: str) -> Optional[str]:
    """Return why ``key`` cannot name a merge field, or None when it can."""
    if not key:
        return "Key is required"
    if len(key) > MERGE_FIELD_KEY_MAX_LENGTH:
        return f"Key must be {MERGE_FIELD_KEY_MAX_LENGTH} characters or less"
    if not MERGE_FIELD_KEY_RE.match(key):
        return "Key must start with a letter and contain only lowercase letters, numbers, and underscores"
    if key in RESERVED_TAG_NAMES:
        return f"Key '{key}' is reserved for waiver markup"
    return None


def find_placeholder_keys(content: str) -> List[str]:
    """Distinct placeholder keys in ``content``, in first-occurrence order."""
    seen: Dict[str, None] = {}
    markup = markup_tag_names(content)
    for m in PLACEHOLDER_RE.finditer(content or ""):
        key = m.group(1)
        if key not in markup:
            seen.setdefault(key, None)
    return list(seen)


def resolve(
    template_content: str,
    org_defaults: Mapping[str, str],
    overrides: Optional[Mapping[str, str]] = None,
    policy: UnresolvedPolicy = UnresolvedPolicy.KEEP,
) -> ResolutionResult:
    """Substitute ``<key>`` tokens in a single pass.

    Per occurrence the override wins, then the organization default. Values
    are inserted as-is and never rescanned, so a value containing ``<other>``
    stays literal text.
    """
    overrides = overrides or {}
    unresolved: Dict[str, None] = {}
    markup = markup_tag_names(template_content)

    def _substitute(m: re.Match) -> str:
        key = m.group(1)
        if key in markup:
            return m.group(0)
        if key in overrides and overrides[key] is not None:
            return str(overrides[key])
        if key in org_defaults and org_defaults[key] is not None:
            return str(org_defaults[key])
        unresolved.setdefault(key, None)
        return "" if policy is UnresolvedPolicy.BLANK else m.group(0)

    resolved = PLACEHOLDER_RE.sub(_substitute, template_content or "")
    keys = list(unresolved)
    if keys and policy is UnresolvedPolicy.ERROR:
        raise ValidationException(
            f"Unresolved merge fields: {', '.join(keys)}",
            {"content": f"No value for merge field(s): {', '.join(keys)}"},
        )
    return ResolutionResult(resolved_content=resolved, unresolved_keys=keys)


def render_preview_html(
    template_content: str,
    org_defaults: Mapping[str, str],
    overrides: Optional[Mapping[str, str]] = None,
) -> ResolutionResult:
    """Resolve for the authoring preview and sanitize the markup.

    Inserted values are escaped, and tokens without a value are shown inside
    ``<span class="merge-field-unresolved">`` so authors can spot them.
    """
    overrides = overrides or {}
    unresolved: Dict[str, None] = {}
    markup = markup_tag_names(template_content)

    def _substitute(m: re.Match) -> str:
        key = m.group(1)
        if key in markup:
            return m.group(0)
        value = overrides.get(key)
        if value is None:
            value = org_defaults.get(key)
        if value is not None:
            return html.escape(str(value))
        unresolved.setdefault(key, None)
        return f'<span class="merge-field-unresolved">&lt;{key}&gt;</span>'

    marked = PLACEHOLDER_RE.sub(_substitute, template_content or "")
    clean = bleach.clean(marked, tags=_PREVIEW_TAGS, attributes=_PREVIEW_ATTRS, strip=True)
    return ResolutionResult(resolved_content=clean, unresolved_keys=list(unresolved))
