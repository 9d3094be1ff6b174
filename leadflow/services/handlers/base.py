"""Provider handler contract and registry."""

from typing import Any, Dict, Iterable, Optional, Type

from leadflow.constants import INTEGRATION_PROVIDERS, INTERNAL_PROVIDERS, Provider
from leadflow.core.exceptions import UnknownProviderError
from leadflow.models.database import Integration
from leadflow.models.nodes import BaseNodeConfig, EmptyConfig, PROVIDER_CONFIGS

from ..execution.models import ExecutionState


class ProviderHandler:
    """Executes action nodes for one provider.

    Subclasses set `provider` and implement `execute`. The executor decodes
    the node config into `config_model` and resolves the tenant integration
    before calling `execute`; internal providers receive `integration=None`.

    Returned values become the step output. A falsy return is a negative
    result, not a failure: only a raised exception sends the run down the
    node's failure path.
    """

    provider: Provider

    @property
    def config_model(self) -> Type[BaseNodeConfig]:
        return PROVIDER_CONFIGS.get(self.provider, EmptyConfig)

    @property
    def is_internal(self) -> bool:
        return self.provider in INTERNAL_PROVIDERS

    @property
    def integration_providers(self) -> tuple:
        """Integration provider names accepted by this handler, in preference order."""
        return INTEGRATION_PROVIDERS.get(self.provider, (self.provider.value,))

    async def execute(self, action_type: Optional[str], config: BaseNodeConfig,
                      state: ExecutionState, integration: Optional[Integration]) -> Any:
        raise NotImplementedError


class HandlerRegistry:
    """Closed mapping of provider name to handler."""

    def __init__(self, handlers: Iterable[ProviderHandler] = ()):
        self._handlers: Dict[Provider, ProviderHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ProviderHandler) -> None:
        self._handlers[handler.provider] = handler

    def get(self, provider: Optional[str]) -> ProviderHandler:
        """Handler for `provider`.

        Raises:
            UnknownProviderError: no handler is registered under that name
        """
        try:
            return self._handlers[Provider(provider)]
        except (KeyError, ValueError):
            raise UnknownProviderError(str(provider)) from None

    def __contains__(self, provider: str) -> bool:
        try:
            return Provider(provider) in self._handlers
        except ValueError:
            return False
