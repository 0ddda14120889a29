"""LLM model factory for stage agents.

Dispatches to the Strands model class for the ``LLM_PROVIDER`` environment
variable (default: ``bedrock``).

Resolution order for model IDs:
  1. Explicit ``model_id`` argument
  2. ``{PROVIDER}_{TIER}_MODEL_ID`` env var  (e.g. ``ANTHROPIC_HEAVY_MODEL_ID``)
  3. ``PROVIDER_DEFAULTS``
"""

import logging
import os
from collections.abc import Callable
from enum import Enum
from typing import Any

from ..config import ModelTier, TimeoutConfig

logger = logging.getLogger(__name__)


class LLMProvider(Enum):
    """Supported LLM providers."""

    BEDROCK = "bedrock"
    ANTHROPIC = "anthropic"


PROVIDER_DEFAULTS: dict[LLMProvider, dict[ModelTier, str]] = {
    LLMProvider.BEDROCK: {
        ModelTier.HEAVY: "us.anthropic.claude-sonnet-4-20250514-v1:0",
        ModelTier.LIGHT: "us.anthropic.claude-3-5-haiku-20241022-v1:0",
    },
    LLMProvider.ANTHROPIC: {
        ModelTier.HEAVY: "claude-sonnet-4-20250514",
        ModelTier.LIGHT: "claude-3-5-haiku-20241022",
    },
}


def get_active_provider() -> LLMProvider:
    """Return the provider named by ``LLM_PROVIDER``.

    Raises:
        ValueError: If the value is not a supported provider.
    """
    raw = os.getenv("LLM_PROVIDER", "bedrock").strip().lower()
    try:
        return LLMProvider(raw)
    except ValueError:
        valid = ", ".join(p.value for p in LLMProvider)
        raise ValueError(f"Unknown LLM_PROVIDER '{raw}'. Valid options: {valid}") from None


def get_model_id_for_tier(tier: ModelTier) -> str:
    """Model ID for a tier under the active provider."""
    provider = get_active_provider()
    env_key = f"{provider.value.upper()}_{tier.value.upper()}_MODEL_ID"
    from_env = os.getenv(env_key)
    if from_env:
        return from_env

    default_id = PROVIDER_DEFAULTS[provider][tier]
    logger.info(f"{env_key} not set, using default {default_id}")
    return default_id


_PROVIDER_FACTORIES: dict[LLMProvider, Callable[..., Any]] = {}


def _register_provider(provider: LLMProvider):
    """Decorator to register a provider factory function."""

    def decorator(fn):
        _PROVIDER_FACTORIES[provider] = fn
        return fn

    return decorator


@_register_provider(LLMProvider.BEDROCK)
def _create_bedrock(model_id: str, max_tokens: int, timeouts: TimeoutConfig, temperature: float):
    from botocore.config import Config
    from strands.models.bedrock import BedrockModel

    boto_config = Config(
        read_timeout=timeouts.read_timeout,
        connect_timeout=timeouts.connect_timeout,
        retries={"max_attempts": 3, "mode": "adaptive"},
    )
    return BedrockModel(
        model_id=model_id,
        max_tokens=max_tokens,
        temperature=temperature,
        streaming=timeouts.streaming,
        boto_client_config=boto_config,
        region_name=os.getenv("AWS_REGION", "us-east-1"),
    )


@_register_provider(LLMProvider.ANTHROPIC)
def _create_anthropic(model_id: str, max_tokens: int, timeouts: TimeoutConfig, temperature: float):
    try:
        from strands.models.anthropic import AnthropicModel
    except ImportError as e:
        raise ImportError(
            "Anthropic provider requires the 'anthropic' package. "
            "Install it with: pip install 'intakeflow[anthropic]'"
        ) from e

    client_args: dict[str, Any] = {"timeout": timeouts.read_timeout}
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if api_key:
        client_args["api_key"] = api_key

    return AnthropicModel(
        client_args=client_args,
        model_id=model_id,
        max_tokens=max_tokens,
        params={"temperature": temperature},
    )


def create_model(
    tier: ModelTier,
    max_tokens: int,
    timeouts: TimeoutConfig,
    model_id: str | None = None,
    temperature: float = 0.3,
):
    """Create a Strands model for the active provider.

    Args:
        tier: Model tier used to resolve ``model_id`` when not given
        max_tokens: Maximum response tokens
        timeouts: Read/connect timeouts and streaming flag
        model_id: Explicit model override
        temperature: Sampling temperature

    Returns:
        A Strands ``Model`` instance.
    """
    provider = get_active_provider()
    model_id = model_id or get_model_id_for_tier(tier)
    logger.info(
        f"Creating {provider.value} model: model_id={model_id}, tier={tier.value}, "
        f"max_tokens={max_tokens}"
    )
    return _PROVIDER_FACTORIES[provider](
        model_id=model_id,
        max_tokens=max_tokens,
        timeouts=timeouts,
        temperature=temperature,
    )
