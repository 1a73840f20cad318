"""Identifier generation."""

import uuid


def generate_id(prefix: str) -> str:
    """Return a collision-resistant identifier such as ``tx_3f2a...``.

    Identifiers are minted once at creation and stored; they are never
    regenerated when records are loaded.
    """
    return f"{prefix}_{uuid.uuid4().hex}"
