from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from common.capabilities import capabilities_for

from .events import BeforeRender, BeforeSave
from .store import StickyStore


logger = logging.getLogger(__name__)

FIELD_NAME = "stucky"
CHECKBOX_LABEL = "Feature this content on the front page"

CanFn = Callable[[Any, str], bool]


def _is_checked(value: Any) -> bool:
    # Empty strings, "0", None and other falsy values mean unchecked.
    return bool(value) and value != "0"


@dataclass
class ContentItem:
    id: int
    content_type: str = "post"


def render_submitbox(item: ContentItem, principal: Any, can: CanFn, store: StickyStore) -> str:
    """Checkbox markup for the publish box, or "" if the principal cannot publish."""
    store.bus.publish(BeforeRender(item_id=item.id, item=item))

    caps = capabilities_for(item.content_type)
    if not can(principal, caps.publish):
        return ""

    checked = ' checked="checked"' if store.is_sticky(item.id) else ""
    return (
        '<div class="misc-pub-section stucky misc-pub-stucky">'
        f'<input id="{FIELD_NAME}" name="{FIELD_NAME}" type="checkbox" value="{FIELD_NAME}"{checked} /> '
        f'<label for="{FIELD_NAME}" class="selectit">{html.escape(CHECKBOX_LABEL)}</label><br />'
        "</div>"
    )


def save_item(
    item_id: int,
    item: ContentItem,
    update: bool,
    form: Optional[Mapping[str, Any]],
    principal: Any,
    can: CanFn,
    store: StickyStore,
) -> int:
    """
    Save-time hook: stick or unstick the item from the submitted form.

    - Publishes `BeforeSave` first, unconditionally.
    - Requires both "edit others" and "publish" capabilities for the item's
      content type. Without them nothing changes and no error is raised.
    - A non-empty `stucky` form value other than "0" sticks the item;
      anything else unsticks it.

    Returns `item_id` unchanged so hosts can chain it.
    """
    store.bus.publish(BeforeSave(item_id=item_id, item=item, update=update))

    caps = capabilities_for(item.content_type)
    if not (can(principal, caps.edit_others) and can(principal, caps.publish)):
        logger.debug("Principal %r lacks capabilities for %s; skipping", principal, item.content_type)
        return item_id

    if _is_checked((form or {}).get(FIELD_NAME)):
        store.stick(item_id)
    else:
        store.unstick(item_id)

    return item_id
