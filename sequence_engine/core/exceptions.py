"""Custom exceptions for the sequence engine with detailed error information."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    STORAGE = "storage"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    LIFECYCLE = "lifecycle"


class SequenceEngineError(Exception):
    """Base exception for all sequence engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_after = retry_after
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "retry_after": self.retry_after,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class GraphValidationError(SequenceEngineError):
    """Raised when a workflow graph fails authoring checks."""

    def __init__(
        self,
        message: str,
        validation_errors: Optional[List[str]] = None,
        workflow_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.validation_errors = validation_errors or []
        if workflow_id:
            self.add_context(workflow_id=workflow_id)
        if validation_errors:
            self.add_details(validation_errors=validation_errors)


class RuleConfigError(SequenceEngineError):
    """Raised when a rule configuration cannot be compiled."""

    def __init__(self, message: str, rule_type: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        if rule_type:
            self.add_context(rule_type=rule_type)


class NodeExecutionError(SequenceEngineError):
    """Raised when a node fails while a run is executing."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        run_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if node_id:
            self.add_context(node_id=node_id)
        if run_id:
            self.add_context(run_id=run_id)


class RunStateError(SequenceEngineError):
    """Raised on an illegal run status transition."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        current_status: Optional[str] = None,
        requested_status: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.LIFECYCLE,
            **kwargs
        )
        if run_id:
            self.add_context(run_id=run_id)
        if current_status and requested_status:
            self.add_details(current_status=current_status, requested_status=requested_status)


class RunNotFoundError(SequenceEngineError):
    """Raised when a run id is unknown."""

    def __init__(self, message: str, run_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.LIFECYCLE,
            **kwargs
        )
        if run_id:
            self.add_context(run_id=run_id)


class WorkflowNotFoundError(SequenceEngineError):
    """Raised when a workflow id is unknown to the repository."""

    def __init__(self, message: str, workflow_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.STORAGE,
            **kwargs
        )
        if workflow_id:
            self.add_context(workflow_id=workflow_id)


class StorageError(SequenceEngineError):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            recoverable=True,
            retry_after=3,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)
        if table:
            self.add_context(table=table)


class RemoteExecutionError(SequenceEngineError):
    """Raised when the remote execution service or an HTTP collaborator fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.NETWORK,
            recoverable=True,
            retry_after=2,
            **kwargs
        )
        self.status_code = status_code
        if endpoint:
            self.add_context(endpoint=endpoint)
        if status_code is not None:
            self.add_details(status_code=status_code)


class ConfigurationError(SequenceEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: SequenceEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a SequenceEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "retry_after": error.retry_after,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
