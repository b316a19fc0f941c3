"""PostgREST adapter exports."""

from __future__ import annotations

from .client import PostgrestError, PostgrestPolicyStore, ilike_filter, in_filter
from .schema import PolicyPayload

__all__ = [
    "PolicyPayload",
    "PostgrestError",
    "PostgrestPolicyStore",
    "ilike_filter",
    "in_filter",
]
