"""LLM abstraction layer - provider-agnostic interface for LLM interactions.

Re-exports the public API so consumers can write:
    from agent.llm import LLMAdapter, LLMResponse, Message, create_adapter
"""

from .base import LLMAdapter, LLMResponse, Message, ToolCall, UsageMetadata, FunctionSchema


def create_adapter(
    provider: str,
    api_key: str | None,
    *,
    base_url: str | None = None,
    timeout_ms: int = 300_000,
) -> LLMAdapter:
    """Build the adapter for ``provider`` ("openai" or "anthropic").

    SDK imports are deferred so only the selected provider's package has to
    be importable.
    """
    prov = (provider or "openai").lower()
    if not api_key:
        raise ValueError(f"No API key configured for LLM provider '{prov}'")
    if prov == "openai":
        from .openai_adapter import OpenAIAdapter
        return OpenAIAdapter(api_key, base_url=base_url, timeout_ms=timeout_ms)
    if prov == "anthropic":
        from .anthropic_adapter import AnthropicAdapter
        return AnthropicAdapter(api_key, timeout_ms=timeout_ms)
    raise ValueError(f"Unsupported LLM provider: {provider!r}")
