"""
Call application.

The Applier turns ledger calls into registry state changes and receipts.
"""

from .applier import KEY_REUSED_ERROR, Applier, ApplyResult, MalformedCallError, RegistryCall

__all__ = ["KEY_REUSED_ERROR", "Applier", "ApplyResult", "MalformedCallError", "RegistryCall"]
