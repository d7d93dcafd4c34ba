"""
Error Taxonomy
Structured error kinds raised by the workflow core. The HTTP layer maps
each `code` to a status; storage exceptions never reach callers.
"""

from typing import Any, Dict, List, Optional


class ContractFlowError(Exception):
    """Base error for every failure surfaced by the core"""

    code: str = "INTERNAL"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class NotFoundError(ContractFlowError):
    """Resource missing, or not owned by the actor (indistinguishable)"""

    code = "NotFound"


class ForbiddenError(NotFoundError):
    """
    Ownership mismatch.
    Subclasses NotFoundError so callers cannot tell a foreign resource
    from a missing one.
    """


class IllegalTransitionError(ContractFlowError):
    """Requested edge is absent from the transition table"""

    code = "IllegalTransition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move contract from {current} to {requested}",
            [{"path": "status", "msg": f"{current} -> {requested} is not a legal transition"}],
        )
        self.current = current
        self.requested = requested


ForbiddenTransitionError = IllegalTransitionError


class ImmutableContractError(ContractFlowError):
    """Field edit attempted on a LOCKED or REVOKED contract"""

    code = "Immutable"

    def __init__(self, status: str):
        super().__init__(f"Contract is {status} and can no longer be edited")
        self.status = status


class ValidationError(ContractFlowError):
    """Malformed blueprint, contract or field input"""

    code = "ValidationFailed"


class ConcurrencyConflictError(ContractFlowError):
    """Optimistic write lost the race more times than allowed"""

    code = "Conflict"


class AuthenticationError(ContractFlowError):
    """Credentials or session token rejected by the identity provider"""

    code = "Unauthorized"
