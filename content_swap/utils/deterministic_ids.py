# content_swap/utils/deterministic_ids.py

"""
Deterministic UUIDs for rows that must keep their identity across table swaps.

Every promotion replaces the physical content tables, so database-assigned
keys would change on each reseed. Tables that are never swapped (for example
``tour_progress``) reference content rows by these ids instead: the same
semantic key yields the same UUIDv5 on every run, in every process.
"""

from __future__ import annotations

import uuid
from typing import Union

# Fixed project namespace. Changing it changes every id ever issued.
PROJECT_NAMESPACE = uuid.UUID("a3e4f8d2-7c1b-4e9a-b5d6-8f2e3a1c4b7d")

SEPARATOR = ":"

Part = Union[str, int]


def _encode_part(part: Part, *, label: str) -> str:
    if isinstance(part, bool) or not isinstance(part, (str, int)):
        raise TypeError(f"{label} must be str or int, got {type(part).__name__}")
    text = str(part)
    if not text:
        raise ValueError(f"{label} must not be empty")
    if SEPARATOR in text:
        raise ValueError(f"{label} must not contain {SEPARATOR!r}: {text!r}")
    return text


def identity(domain_tag: str, *parts: Part) -> str:
    """
    Return the stable UUID (canonical string form) for a namespaced key.

    The domain tag is hashed together with the parts, so ``identity("lesson", "foo")``
    and ``identity("step", "foo")`` never collide.
    """
    if not parts:
        raise ValueError("identity() needs at least one key part")

    name = SEPARATOR.join(
        [_encode_part(domain_tag, label="domain_tag")]
        + [_encode_part(p, label=f"part[{i}]") for i, p in enumerate(parts)]
    )
    return str(uuid.uuid5(PROJECT_NAMESPACE, name))


def lesson_id(slug: str) -> str:
    """Tour lesson id, derived from the lesson slug."""
    return identity("tour-lesson", slug)


def step_id(lesson_slug: str, order_index: int) -> str:
    """Tour step id, derived from (lesson slug, step order index)."""
    return identity("tour-step", lesson_slug, order_index)


def pattern_id(slug: str) -> str:
    return identity("pattern", slug)
