"""Workflow engine exception hierarchy.

Only raised exceptions route a run onto its failure path. Handlers that
want the run to continue return a falsy/failure result instead.
"""


class WorkflowError(Exception):
    """Base exception for all workflow engine errors."""


class ConfigurationError(WorkflowError):
    """A workflow or tenant is misconfigured. Always fatal to the node."""


class UnknownNodeTypeError(ConfigurationError):
    """Node type is not one of action/condition/delay/trigger."""

    def __init__(self, node_type: str):
        self.node_type = node_type
        super().__init__(f"Unknown node type: {node_type}")


class UnknownProviderError(ConfigurationError):
    """Action node names a provider with no registered handler."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Untrusted provider: {provider}")


class MissingIntegrationError(ConfigurationError):
    """Tenant has no active integration for an external provider."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Missing active integration for provider: {provider}")


class InvalidNodeConfigError(ConfigurationError):
    """Node config document does not decode into the provider's config type."""

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"Invalid config for node {node_id}: {message}")


class HandlerTimeoutError(WorkflowError):
    """Provider handler did not finish within the configured timeout."""

    def __init__(self, provider: str, timeout: float):
        self.provider = provider
        self.timeout = timeout
        super().__init__(f"Handler for provider {provider} timed out after {timeout:g}s")


class ProviderError(WorkflowError):
    """Error from an external provider where continuing makes no sense."""

    def __init__(self, provider_name: str, message: str):
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")
