"""cmdgov public API."""

from .approvals import ApprovalStore, hash_command
from .classify import classify_command
from .config import WorkspaceConfig
from .errors import (
    CmdGovError,
    ConflictError,
    NotFoundError,
    PolicyError,
    StorageError,
    ValidationError,
)
from .filelock import FileLock, locked
from .policies import Evaluator, PolicyDocument, Rule, RuleMatch, load_evaluator, normalize_repo
from .redaction import redact_payload, redact_string
from .runlog import RunLog, new_run_id
from .service import Governor
from .types import (
    ApprovalRequest,
    ApprovalStatus,
    Decision,
    EvalRequest,
    EvalResult,
    Event,
    RiskClass,
)

__all__ = (
    # Types
    "Decision",
    "RiskClass",
    "ApprovalStatus",
    "EvalRequest",
    "EvalResult",
    "ApprovalRequest",
    "Event",
    # Policy
    "Evaluator",
    "PolicyDocument",
    "Rule",
    "RuleMatch",
    "classify_command",
    "load_evaluator",
    "normalize_repo",
    # Stores
    "ApprovalStore",
    "RunLog",
    "FileLock",
    "locked",
    "hash_command",
    "new_run_id",
    "redact_payload",
    "redact_string",
    # Composition
    "Governor",
    "WorkspaceConfig",
    # Errors
    "CmdGovError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "PolicyError",
)
