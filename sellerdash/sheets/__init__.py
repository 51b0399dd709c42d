"""Spreadsheet-as-datastore access layer."""
from sellerdash.sheets.cache import TTLCache
from sellerdash.sheets.gate import RequestGate
from sellerdash.sheets.retry import RetryPolicy
from sellerdash.sheets.store import ResolveOutcome, ViolationStore

__all__ = [
    "TTLCache",
    "RequestGate",
    "RetryPolicy",
    "ResolveOutcome",
    "ViolationStore",
]
