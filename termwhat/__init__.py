"""Natural-language help for the terminal, backed by local or cloud chat models."""

from .config import (
    AnthropicProviderConfig,
    AppConfig,
    ConfigStore,
    EnvironmentOverrides,
    OllamaProviderConfig,
    OpenAIProviderConfig,
    OpenRouterProviderConfig,
    ProviderConfig,
    register_provider_config,
)
from .llm import (
    ConfigurationError,
    ConversationMessage,
    HealthCheckResult,
    ProviderClient,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderTimeoutError,
    TransportError,
    UnknownProviderKindError,
)
from .ollama import OllamaProvider
from .openai_client import OpenAIProtocolTransport, OpenAIProvider
from .openrouter import OpenRouterProvider
from .anthropic_client import AnthropicProvider
from .factory import (
    create_provider,
    create_provider_from_app_config,
    register_provider_backend,
    validate_api_key,
)
from .chat import ChatSession
from .setup_flow import SetupFlow, run_setup

__version__ = "0.3.0"

__all__ = [
    "AnthropicProviderConfig",
    "AppConfig",
    "ConfigStore",
    "EnvironmentOverrides",
    "OllamaProviderConfig",
    "OpenAIProviderConfig",
    "OpenRouterProviderConfig",
    "ProviderConfig",
    "register_provider_config",
    "ConfigurationError",
    "ConversationMessage",
    "HealthCheckResult",
    "ProviderClient",
    "ProviderError",
    "ProviderNotConfiguredError",
    "ProviderTimeoutError",
    "TransportError",
    "UnknownProviderKindError",
    "OllamaProvider",
    "OpenAIProtocolTransport",
    "OpenAIProvider",
    "OpenRouterProvider",
    "AnthropicProvider",
    "create_provider",
    "create_provider_from_app_config",
    "register_provider_backend",
    "validate_api_key",
    "ChatSession",
    "SetupFlow",
    "run_setup",
]
