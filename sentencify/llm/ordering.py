"""Topic ordering via the model.

The model is asked for 1-based indices into the topic list and the topics
are reordered deterministically from its answer. No topic is ever lost:
indices that are out of range, repeated or not integers are skipped, and
topics the answer never mentions are appended in their original order.
When the answer has no usable shape, the input order is kept.
"""

import json
import re
from typing import Any, Optional, Protocol, Sequence, TypeVar

from sentencify.llm.parser import extract_json
from sentencify.llm.request_builder import CallOptions, Message, TextBlock
from sentencify.prompts.ordering import ORDER_TOPICS_USER, format_topic_list
from sentencify.utils.logging import log, get_logger

MODULE = "llm.ordering"
logger = get_logger()

_ORDER_OBJECT = re.compile(r'\{\s*"order"\s*:\s*\[[\d,\s]*\]\s*\}')


class OrderableItem(Protocol):
    title: str
    category: str


ItemT = TypeVar("ItemT", bound=OrderableItem)


def _parse_answer(text: str) -> Optional[dict[str, Any]]:
    match = _ORDER_OBJECT.search(text or "")
    candidate = match.group(0) if match else extract_json(text or "")
    if candidate is None:
        return None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _append_missing(ordered: list, items: Sequence, placed: set[int]) -> list:
    ordered.extend(item for i, item in enumerate(items) if i not in placed)
    return ordered


def _by_indices(items: Sequence[ItemT], order: list) -> list[ItemT]:
    ordered: list[ItemT] = []
    placed: set[int] = set()
    for entry in order:
        if isinstance(entry, bool) or not isinstance(entry, int):
            continue
        position = entry - 1
        if 0 <= position < len(items) and position not in placed:
            placed.add(position)
            ordered.append(items[position])
    return _append_missing(ordered, items, placed)


def _by_titles(items: Sequence[ItemT], titles: list) -> list[ItemT]:
    ordered: list[ItemT] = []
    placed: set[int] = set()
    for title in titles:
        if not isinstance(title, str):
            continue
        wanted = title.upper()
        for i, item in enumerate(items):
            if i not in placed and item.title.upper() == wanted:
                placed.add(i)
                ordered.append(item)
                break
    return _append_missing(ordered, items, placed)


def resolve_order(items: Sequence[ItemT], text: str) -> list[ItemT]:
    """Reorder ``items`` following the model answer in ``text``.

    Accepts {"order": [3, 1, 2]} (1-based indices) or the legacy
    {"orderedTitles": ["B", "A"]} (case-insensitive title match). Anything
    else returns the items in their original order.
    """
    parsed = _parse_answer(text)
    if parsed is None:
        log.warning(logger, MODULE, "order_fallback", "No JSON in ordering answer, keeping order",
                    items=len(items), raw_preview=(text or "")[:200])
        return list(items)

    order = parsed.get("order")
    if isinstance(order, list):
        return _by_indices(items, order)

    titles = parsed.get("orderedTitles")
    if isinstance(titles, list):
        log.debug(logger, MODULE, "legacy_titles", "Ordering answer uses orderedTitles")
        return _by_titles(items, titles)

    log.warning(logger, MODULE, "order_fallback", "Unknown ordering answer shape, keeping order",
                items=len(items), keys=sorted(parsed))
    return list(items)


async def reorder_topics(items: Sequence[ItemT], invoker) -> list[ItemT]:
    """Ask the model for the procedural order of ``items`` and apply it.

    Any failure (provider, parsing) keeps the original order.
    """
    if len(items) <= 1:
        return list(items)

    prompt = ORDER_TOPICS_USER.format(topics=format_topic_list(items))
    options = CallOptions(max_tokens=4000, temperature=0.0, top_p=0.9, top_k=40)

    log.info(logger, MODULE, "reorder_start", "Reordering topics", items=len(items))
    try:
        text = await invoker.call_ai(
            [Message(role="user", content=[TextBlock(text=prompt)])],
            options,
        )
    except Exception as e:
        log.error(logger, MODULE, "reorder_failed", "Ordering call failed, keeping order",
                  error=str(e), error_type=type(e).__name__, items=len(items))
        return list(items)

    ordered = resolve_order(items, text)
    log.info(logger, MODULE, "reorder_done", "Topics reordered", items=len(ordered))
    return ordered
