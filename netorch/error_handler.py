"""
Error Handler - Error categorisation, retry with backoff and never-raising cleanup

Backend bring-up commands are retried with exponential backoff; teardown steps
run through ``run_cleanup_step`` so a failing cleanup is logged and recorded
but never changes a scenario verdict.
"""
import random
import time
import logging
from typing import Optional, Callable, Any, Dict, List, Tuple
from enum import Enum
from dataclasses import dataclass

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    LOW = "low"  # Non-critical, can continue
    MEDIUM = "medium"  # Degraded operation
    HIGH = "high"  # Run fails
    FATAL = "fatal"  # Unrecoverable, must abort


class ErrorCategory(Enum):
    """Categories of errors for targeted handling"""
    TOPOLOGY = "topology"
    DEPLOYMENT = "deployment"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    NODE_CONTROL = "node_control"
    CHAOS_INJECTION = "chaos_injection"
    WORKLOAD = "workload"
    EXPECTATION = "expectation"
    READINESS = "readiness"
    RESOURCE_CLEANUP = "resource_cleanup"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Context information for an error"""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception: Optional[Exception] = None
    component: Optional[str] = None
    scenario_id: Optional[str] = None
    node_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True


class ErrorHandler:
    """
    Centralized error bookkeeping for scenario runs.

    Chaos and cleanup failures are tolerated (logged and recorded); everything
    else is reported back to the caller as not recoverable so it propagates.
    """

    TOLERATED = (ErrorCategory.CHAOS_INJECTION, ErrorCategory.RESOURCE_CLEANUP)

    def __init__(self):
        self.error_history: List[ErrorContext] = []

    def handle_error(self, error_context: ErrorContext) -> bool:
        """Record an error; returns True when the run may continue"""
        self._log_error(error_context)
        self.error_history.append(error_context)

        if error_context.severity == ErrorSeverity.FATAL:
            return False
        if error_context.category in self.TOLERATED:
            return True
        return error_context.severity == ErrorSeverity.LOW

    def retry_with_backoff(
        self,
        operation: Callable,
        config: RetryConfig,
        error_category: ErrorCategory,
        operation_name: str = "operation",
        retry_on: Tuple[type, ...] = (Exception,),
        **kwargs
    ) -> Any:
        """Execute an operation with retry logic and exponential backoff.

        Returns the operation's result; re-raises the last exception once all
        attempts are exhausted. Exceptions outside ``retry_on`` propagate
        immediately.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(config.max_attempts):
            try:
                logger.info(f"Executing {operation_name} (attempt {attempt + 1}/{config.max_attempts})")
                result = operation(**kwargs)
                if attempt > 0:
                    logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
                return result
            except retry_on as e:
                last_exception = e
                logger.warning(f"{operation_name} failed on attempt {attempt + 1}: {e}")
                self.error_history.append(ErrorContext(
                    category=error_category,
                    severity=ErrorSeverity.MEDIUM if attempt < config.max_attempts - 1 else ErrorSeverity.HIGH,
                    message=f"{operation_name} failed: {e}",
                    exception=e,
                    metadata={'attempt': attempt + 1, 'max_attempts': config.max_attempts}
                ))

                if attempt < config.max_attempts - 1:
                    backoff_delay = min(
                        config.initial_delay * (config.exponential_base ** attempt),
                        config.max_delay
                    )
                    if config.jitter:
                        backoff_delay *= (0.5 + random.random())
                    logger.info(f"Retrying in {backoff_delay:.2f} seconds...")
                    time.sleep(backoff_delay)

        logger.error(f"{operation_name} failed after {config.max_attempts} attempts")
        raise last_exception

    def run_cleanup_step(self, step: Callable[[], Any], step_name: str, component: Optional[str] = None) -> bool:
        """Run one teardown step; failures are logged and recorded, never raised"""
        try:
            step()
            return True
        except Exception as e:
            self.handle_error(ErrorContext(
                category=ErrorCategory.RESOURCE_CLEANUP,
                severity=ErrorSeverity.MEDIUM,
                message=f"{step_name} failed: {e}",
                exception=e,
                component=component,
            ))
            return False

    def _log_error(self, error_context: ErrorContext):
        """Log error with appropriate level based on severity"""
        log_message = f"[{error_context.category.value}] {error_context.message}"

        if error_context.component:
            log_message = f"[{error_context.component}] {log_message}"
        if error_context.scenario_id:
            log_message += f" (scenario: {error_context.scenario_id})"
        if error_context.node_name:
            log_message += f" (node: {error_context.node_name})"

        if error_context.severity == ErrorSeverity.FATAL:
            logger.critical(log_message)
        elif error_context.severity == ErrorSeverity.HIGH:
            logger.error(log_message)
        elif error_context.severity == ErrorSeverity.MEDIUM:
            logger.warning(log_message)
        else:
            logger.info(log_message)

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors encountered"""
        errors_by_category: Dict[str, int] = {}
        errors_by_severity: Dict[str, int] = {}

        for error in self.error_history:
            category = error.category.value
            errors_by_category[category] = errors_by_category.get(category, 0) + 1
            severity = error.severity.value
            errors_by_severity[severity] = errors_by_severity.get(severity, 0) + 1

        return {
            'total_errors': len(self.error_history),
            'by_category': errors_by_category,
            'by_severity': errors_by_severity,
            'recent_errors': [
                {
                    'category': e.category.value,
                    'severity': e.severity.value,
                    'message': e.message
                }
                for e in self.error_history[-10:]
            ]
        }

    def clear_history(self):
        self.error_history.clear()


_error_handler = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance"""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler
