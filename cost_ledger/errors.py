"""
Error taxonomy for cost collection and reconciliation.

Every error carries a stable machine-readable code next to its message.
"""

import re
from typing import Any, Dict, Optional


class CostLedgerError(Exception):
    """Base exception for all cost ledger errors."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Structured form returned to trigger callers."""
        return {"code": self.code, "message": self.message, "details": self.details}


class AdapterError(CostLedgerError):
    """Raised when a collector adapter fails (auth, network, provider side).

    Credential-looking fragments are scrubbed from the message so that
    provider error strings can be stored in collection status safely.
    """

    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(self._sanitize(message), code=code, details=details)

    @staticmethod
    def _sanitize(msg: str) -> str:
        msg = re.sub(r'(?i)(api_key|apikey|secret|token|password|signature)=[^&\s]+', r'\1=[REDACTED]', msg)
        msg = re.sub(r'(?i)bearer\s+[A-Za-z0-9._\-]+', 'Bearer [REDACTED]', msg)
        msg = re.sub(r'sk-[A-Za-z0-9_\-]{8,}', 'sk-[REDACTED]', msg)
        return msg


class StoreError(CostLedgerError):
    """Base for document store failures."""


class StoreReadError(StoreError):
    """Raised when the batched existence check or a query fails."""

    def __init__(self, message: str, code: str = "store_read_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class StoreWriteError(StoreError):
    """Raised when a batched write fails. The batch may be partially applied."""

    def __init__(self, message: str, code: str = "store_write_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ValidationError(CostLedgerError):
    """Raised when a cost entry is malformed."""

    def __init__(self, message: str, code: str = "validation_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)
