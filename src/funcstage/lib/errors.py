"""Custom exception hierarchy for funcstage configuration and deployments."""


class FuncStageError(Exception):
    """Base exception for all funcstage errors.

    All funcstage-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(FuncStageError):
    """Exception raised for configuration errors.

    Raised when configuration loading, parsing or validation fails, and for
    malformed deploy/delete requests (bad prefix, duplicate functions).

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class FileNotFoundError(FuncStageError):
    """Exception raised when a configuration file is not found.

    Attributes:
        path: Path to the file that was not found
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize FileNotFoundError with path and message.

        Args:
            path: Path to the file that was not found
            message: Descriptive error message, optionally with suggestions
        """
        self.path = path
        self.message = message
        super().__init__(f"File not found: {path}\n{message}")


class DeploymentError(FuncStageError):
    """Exception raised when a platform operation fails.

    Attributes:
        operation: The operation that failed (deploy, delete, status, submit...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Create a deployment error for an operation."""
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment operation '{operation}' failed: {message}")


class ResourceNotFoundError(DeploymentError):
    """Raised by deployers when the targeted function does not exist.

    Attributes:
        resource_id: Name of the missing function
    """

    def __init__(self, operation: str, resource_id: str) -> None:
        """Create a not-found error for a resource id."""
        self.resource_id = resource_id
        super().__init__(operation, f"Function '{resource_id}' does not exist")


class CloudSDKNotInstalledError(FuncStageError):
    """Raised when the cloud provider tooling is not available."""

    def __init__(self, provider: str, sdk_name: str) -> None:
        """Create an error naming the missing tooling."""
        self.provider = provider
        self.sdk_name = sdk_name
        super().__init__(
            f"The {provider} deployer requires '{sdk_name}', which was not found. "
            f"Install it and make sure it is on your PATH."
        )


class SubstitutionError(FuncStageError):
    """Exception raised when a build substitution cannot be resolved.

    Attributes:
        variable: The substitution variable name (e.g. _PREFIX)
        message: Human-readable error message
    """

    def __init__(self, variable: str, message: str) -> None:
        """Create a substitution error for a variable."""
        self.variable = variable
        self.message = message
        super().__init__(f"Substitution error for '{variable}': {message}")
