"""Placeholder interpolation for message content.

Supports ``{{ contact.first_name }}`` style references to the contact and
``{{ trigger.order.name }}`` references into the trigger event data.
camelCase contact names (``{{contact.firstName}}``) are accepted as well.
Placeholders that do not resolve render as an empty string.
"""

import re
from typing import Any, Optional

from core.utils import is_missing, lookup_path
from db.models.contact import Contact

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")

_CONTACT_ATTRS = {
    "first_name": "first_name",
    "firstName": "first_name",
    "last_name": "last_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "total_spent": "total_spent",
    "totalSpent": "total_spent",
    "order_count": "order_count",
    "orderCount": "order_count",
}


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def render_template(
    template: Optional[str],
    contact: Optional[Contact] = None,
    trigger_data: Optional[dict] = None,
) -> str:
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        path = match.group(1)
        root, _, rest = path.partition(".")
        if root == "contact":
            attr = _CONTACT_ATTRS.get(rest)
            if contact is None or attr is None:
                return ""
            return _format(getattr(contact, attr))
        if root == "trigger":
            value = lookup_path(trigger_data or {}, rest) if rest else trigger_data
            return "" if is_missing(value) else _format(value)
        return ""

    return _PLACEHOLDER.sub(_replace, template)
