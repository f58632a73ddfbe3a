"""
onball/exceptions.py
Typed exceptions for the statistics and ledger engine.

Provides typed exceptions for:
- Input validation before any state mutation
- Missing players, matches and ledger entries
- Ledger/history disagreement during reversal
- Persistence round-trip failures
"""
from typing import Any, Dict, Optional


class OnBallException(Exception):
    """Base exception for the league engine"""
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = None,
        code: str = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if status_code:
            self.status_code = status_code
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)


class ValidationError(OnBallException):
    """
    Raised when input is rejected before anything is written.

    Examples:
    - Missing or unparseable score on a match save
    - Attribute score outside 1-10
    - Team size below 1
    """
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class IrreversibleActionError(ValidationError):
    """
    Raised when a ledger entry has no compensating action.

    Examples:
    - leaderboard_reset, teams_generated, rematch_created
    - Any entry logged with undoable=False
    """
    code = "IRREVERSIBLE_ACTION"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Action '{action}' cannot be reversed", details={"action": action})


class NotFoundError(OnBallException):
    """
    Raised when a player, match, league or ledger entry doesn't exist.
    """
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any = None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message)


class DuplicatePlayerError(OnBallException):
    """
    Raised when a player name is already taken (case-insensitive).
    """
    status_code = 409
    code = "DUPLICATE_PLAYER"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Player '{name}' already exists", details={"name": name})


class ConsistencyError(OnBallException):
    """
    Raised when stored state cannot be trusted: the ledger and the match
    history disagree under strict match reversal, or a player row that
    failed validation would be overwritten.
    """
    status_code = 409
    code = "CONSISTENCY_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class StoreError(OnBallException):
    """
    Raised when a persistence round trip fails.
    """
    status_code = 503
    code = "STORE_ERROR"

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message, details={"operation": operation} if operation else None)
