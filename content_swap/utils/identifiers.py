# content_swap/utils/identifiers.py

import re

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Postgres truncates identifiers longer than this.
_MAX_IDENTIFIER_LEN = 63

_FK_ACTIONS = frozenset({"CASCADE", "RESTRICT", "NO ACTION", "SET NULL", "SET DEFAULT"})


def sanitize_ident(name: str) -> str:
    if not _IDENTIFIER_RE.match(name) or len(name) > _MAX_IDENTIFIER_LEN:
        raise ValueError(f"Unsafe identifier: {name!r}")
    return name


def qident(name: str) -> str:
    return f'"{sanitize_ident(name)}"'


def qualified(schema: str, name: str) -> str:
    """Schema-qualified, quoted name: "schema"."name"."""
    return f"{qident(schema)}.{qident(name)}"


def fk_action(action: str) -> str:
    """Allow-list for ON DELETE / ON UPDATE actions."""
    normalized = " ".join(action.upper().split())
    if normalized not in _FK_ACTIONS:
        raise ValueError(f"Unsupported foreign key action: {action!r}")
    return normalized


def staging_name(table: str) -> str:
    return sanitize_ident(f"{table}_staging")


def retired_name(table: str) -> str:
    return sanitize_ident(f"{table}_retired")
