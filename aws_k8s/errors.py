from typing import Optional


class AwsK8sError(Exception):
    """Base class for errors raised while composing cluster resources."""


class ConfigurationError(AwsK8sError, ValueError):
    """Raised when component inputs are missing or mutually exclusive."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for {field}: {reason}")


class ClusterLookupError(AwsK8sError, LookupError):
    """Raised when a descriptive lookup against an existing cluster comes back empty."""

    def __init__(self, cluster_name: Optional[str], message: str):
        self.cluster_name = cluster_name
        super().__init__(message)


class AddonVersionLookupError(ClusterLookupError):
    """Raised when no managed addon version is available for the cluster."""
