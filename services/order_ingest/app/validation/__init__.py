"""Business rules for incoming orders."""

from .rules import ensure_valid, validate_order

__all__ = ["ensure_valid", "validate_order"]
