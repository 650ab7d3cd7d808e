"""
ROCm Setup Exception Hierarchy

Provides clear, actionable error messages with structured information
for logging, user feedback, and programmatic error handling.
"""

from typing import Optional, Dict, Any, List, Sequence


class SetupError(Exception):
    """
    Base exception for all setup errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context as key-value pairs
        cause: Original exception that caused this error
        recoverable: Whether the error is recoverable
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        s = f"[{self.code}] {self.message}"
        if self.details:
            s += f" (details: {self.details})"
        if self.cause:
            s += f" caused by: {self.cause}"
        return s

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Command errors
# =============================================================================

class CommandError(SetupError):
    """External command exited with a nonzero status."""
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        super().__init__(
            f"Command failed ({returncode}): {' '.join(argv)}",
            code="COMMAND_FAILED",
            details={"argv": list(argv), "returncode": returncode, "stderr": stderr.strip()},
        )
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


# =============================================================================
# Snapshot / rollback errors
# =============================================================================

class SnapshotError(SetupError):
    """Snapshot capture failed."""
    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(
            message,
            code="SNAPSHOT_FAILED",
            cause=cause,
        )


class SnapshotCorruptError(SnapshotError):
    """Snapshot exists but is not well-formed."""
    def __init__(self, path: str, reason: str):
        SetupError.__init__(
            self,
            f"Snapshot at {path} is not usable: {reason}",
            code="SNAPSHOT_CORRUPT",
            details={"path": path, "reason": reason},
            recoverable=False,
        )


class RollbackError(SetupError):
    """A restore step failed; earlier steps stay applied."""
    def __init__(self, step: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Rollback failed while {step}. System may be in an inconsistent state.",
            code="ROLLBACK_FAILED",
            details={"step": step},
            cause=cause,
            recoverable=False,
        )
        self.step = step


# =============================================================================
# Driver installation errors
# =============================================================================

class DriverInstallError(SetupError):
    """Driver installation halted on a failing step."""
    def __init__(self, step_id: str, report: Any = None, cause: Optional[Exception] = None):
        super().__init__(
            f"Driver installation halted at step '{step_id}'",
            code="DRIVER_INSTALL_FAILED",
            details={"step": step_id},
            cause=cause,
            recoverable=False,
        )
        self.step_id = step_id
        self.report = report


# =============================================================================
# Provisioning errors
# =============================================================================

class ProvisionError(SetupError):
    """Virtual environment could not be created."""
    def __init__(self, path: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Cannot create environment at {path}: {reason}",
            code="PROVISION_FAILED",
            details={"path": path, "reason": reason},
            cause=cause,
            recoverable=False,
        )


class DownloadError(SetupError):
    """Download failed."""
    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Failed to download: {reason}",
            code="DOWNLOAD_FAILED",
            details={"url": url, "reason": reason},
        )


class StrategyError(SetupError):
    """A single acquisition strategy failed."""
    def __init__(self, component: str, strategy: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"{strategy} failed for {component}: {reason}",
            code="STRATEGY_FAILED",
            details={"component": component, "strategy": strategy, "reason": reason},
            cause=cause,
        )
        self.component = component
        self.strategy = strategy


class InstallFailure(SetupError):
    """Every acquisition strategy for a component failed."""
    def __init__(self, component: str, attempted: List[str], errors: Optional[List[str]] = None):
        super().__init__(
            f"Failed to install {component} (attempted: {', '.join(attempted)})",
            code="INSTALL_FAILED",
            details={"component": component, "attempted": list(attempted), "errors": errors or []},
            recoverable=False,
        )
        self.component = component
        self.attempted = list(attempted)


class VerificationError(SetupError):
    """Smoke check could not run or reported a problem."""
    def __init__(self, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Installation verification failed: {reason}",
            code="VERIFICATION_FAILED",
            details={"reason": reason},
            cause=cause,
            recoverable=False,
        )


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigError(SetupError):
    """Base for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration: {field}={value}: {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value), "reason": reason},
        )


class MissingConfigError(ConfigError):
    """Configuration file missing."""
    def __init__(self, field: str):
        super().__init__(
            f"Missing required configuration: {field}",
            code="MISSING_CONFIG",
            details={"field": field},
        )
