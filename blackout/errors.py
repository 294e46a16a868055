"""Error taxonomy for the Blackout narrative core."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Authored data references something that does not exist or cannot apply.

    Raised by lookups (keyword ids, node targets, operands) and caught by the
    evaluator that owns the lookup, which logs it and fails closed.
    """
