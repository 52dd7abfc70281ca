"""
Routing Tables

Static configuration the router reads but never mutates:

- DEFAULT_RATE_LIMITS: throughput limits per backend
- DEFAULT_FALLBACK_CHAINS: ordered backends per named chain
- FallbackChainTable: maps a request's (use_case, priority) to a chain

Both tables can be replaced at startup from JSON files.

Chain file format:
    {
      "chains": {"chat_speed": ["groq:llama-3.1-70b-versatile", ...]},
      "routes": {"chat:speed": "chat_speed"}
    }
Chain entries may also be objects: {"provider": "groq", "model": "..."}.
"routes" is optional; its entries win over the built-in selection rules.

Rate limit file format:
    {"groq:llama-3.1-8b-instant": {"requests_per_second": 0.5, "burst_capacity": 10,
                                   "tokens_per_minute": 20000, "requests_per_day": 20000}}
"""

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from inference_router.models.domain import BackendId, RateLimitConfig

logger = logging.getLogger(__name__)


def _b(provider: str, model: str) -> BackendId:
    return BackendId(provider=provider, model=model)


def _limits(rps: float, burst: int, tpm: int, rpd: int) -> RateLimitConfig:
    return RateLimitConfig(
        requests_per_second=rps,
        burst_capacity=burst,
        tokens_per_minute=tpm,
        requests_per_day=rpd,
    )


# =============================================================================
# Default Rate Limits
# =============================================================================

DEFAULT_RATE_LIMITS: dict[BackendId, RateLimitConfig] = {
    # OpenAI
    _b("openai", "gpt-4o"): _limits(10, 50, 30_000, 10_000),
    _b("openai", "gpt-4o-mini"): _limits(10, 50, 200_000, 10_000),
    _b("openai", "gpt-4-turbo"): _limits(10, 50, 30_000, 10_000),
    # Anthropic
    _b("anthropic", "claude-3-5-sonnet-20241022"): _limits(5, 25, 40_000, 5_000),
    _b("anthropic", "claude-3-5-haiku-20241022"): _limits(5, 25, 50_000, 5_000),
    _b("anthropic", "claude-3-opus-20240229"): _limits(5, 25, 20_000, 5_000),
    # Groq free tier
    _b("groq", "llama-3.1-70b-versatile"): _limits(0.5, 10, 14_400, 14_400),
    _b("groq", "llama-3.1-8b-instant"): _limits(0.5, 10, 20_000, 20_000),
    _b("groq", "mixtral-8x7b-32768"): _limits(0.5, 10, 5_000, 5_000),
    # Gemini free tier
    _b("gemini", "gemini-1.5-flash"): _limits(1, 100, 4_000_000, 1_500),
    _b("gemini", "gemini-2.5-flash-lite"): _limits(1, 100, 1_000_000, 1_500),
    _b("gemini", "gemini-2.5-flash"): _limits(1, 100, 4_000_000, 1_500),
    _b("gemini", "gemini-1.5-pro"): _limits(1, 100, 4_000_000, 1_000),
    # OpenRouter
    _b("openrouter", "meta-llama/llama-3-70b"): _limits(10, 50, 100_000, 10_000),
    _b("openrouter", "anthropic/claude-3-sonnet"): _limits(10, 50, 40_000, 10_000),
}


# =============================================================================
# Default Fallback Chains
# =============================================================================

CHAT_SPEED = "chat_speed"
CHAT_COST = "chat_cost"
CODE_QUALITY = "code_quality"
CODE_COST = "code_cost"
REASONING = "reasoning"
BULK = "bulk"

DEFAULT_FALLBACK_CHAINS: dict[str, tuple[BackendId, ...]] = {
    CHAT_SPEED: (
        _b("groq", "llama-3.1-70b-versatile"),
        _b("gemini", "gemini-1.5-flash"),
        _b("openrouter", "meta-llama/llama-3-70b"),
    ),
    CHAT_COST: (
        _b("gemini", "gemini-2.5-flash-lite"),
        _b("openrouter", "meta-llama/llama-3-70b"),
        _b("groq", "llama-3.1-8b-instant"),
    ),
    CODE_QUALITY: (
        _b("openai", "gpt-4o"),
        _b("anthropic", "claude-3-5-sonnet-20241022"),
        _b("gemini", "gemini-1.5-pro"),
    ),
    CODE_COST: (
        _b("gemini", "gemini-1.5-flash"),
        _b("groq", "llama-3.1-70b-versatile"),
        _b("openai", "gpt-4o-mini"),
    ),
    REASONING: (
        _b("anthropic", "claude-3-5-sonnet-20241022"),
        _b("openai", "gpt-4o"),
        _b("openrouter", "anthropic/claude-3-sonnet"),
    ),
    BULK: (
        _b("gemini", "gemini-2.5-flash-lite"),
        _b("openrouter", "meta-llama/llama-3-70b"),
        _b("groq", "llama-3.1-8b-instant"),
    ),
}


def default_chain_name(use_case: str, priority: str) -> str:
    """Built-in (use_case, priority) to chain-name rules."""
    use_case = use_case.lower()
    priority = priority.lower()
    if use_case == "chat":
        return CHAT_COST if priority == "cost" else CHAT_SPEED
    if use_case == "code":
        return CODE_COST if priority == "cost" else CODE_QUALITY
    if use_case in ("reasoning", "analysis"):
        return REASONING
    if use_case == "bulk":
        return BULK
    return CHAT_SPEED


# =============================================================================
# Chain Table
# =============================================================================


class FallbackChainTable:
    """
    Named fallback chains plus the rules that pick one for a request.

    Args:
        chains: Chain name to ordered backends
        routes: Explicit (use_case, priority) to chain-name overrides
    """

    def __init__(
        self,
        chains: Optional[Mapping[str, Sequence[BackendId]]] = None,
        routes: Optional[Mapping[tuple[str, str], str]] = None,
    ) -> None:
        source = chains if chains is not None else DEFAULT_FALLBACK_CHAINS
        if not source:
            raise ValueError("At least one fallback chain is required")
        self._chains: dict[str, tuple[BackendId, ...]] = {
            name: tuple(backends) for name, backends in source.items()
        }
        self._routes: dict[tuple[str, str], str] = {
            (u.lower(), p.lower()): name for (u, p), name in (routes or {}).items()
        }
        for name in self._routes.values():
            if name not in self._chains:
                raise ValueError(f"Route points at unknown chain '{name}'")

    def names(self) -> list[str]:
        return list(self._chains)

    def get(self, name: str) -> tuple[BackendId, ...]:
        return self._chains[name]

    def chain_name_for(self, use_case: str, priority: str) -> str:
        """
        Chain name for a request class.

        Explicit routes win; then the built-in rules; when the rules name a
        chain this table lacks, the first chain is used.
        """
        explicit = self._routes.get((use_case.lower(), priority.lower()))
        if explicit is not None:
            return explicit
        name = default_chain_name(use_case, priority)
        if name in self._chains:
            return name
        return next(iter(self._chains))

    def select(self, use_case: str, priority: str) -> tuple[str, tuple[BackendId, ...]]:
        """Chain name and ordered backends for a request class."""
        name = self.chain_name_for(use_case, priority)
        return name, self._chains[name]

    def backends(self) -> set[BackendId]:
        """Every backend referenced by any chain."""
        return {backend for chain in self._chains.values() for backend in chain}

    def providers(self) -> set[str]:
        return {backend.provider for backend in self.backends()}

    def to_dict(self) -> dict[str, list[str]]:
        return {name: [b.key for b in chain] for name, chain in self._chains.items()}


# =============================================================================
# Loaders
# =============================================================================


def _parse_backend(entry: Union[str, Mapping[str, Any]]) -> BackendId:
    if isinstance(entry, str):
        return BackendId.parse(entry)
    return BackendId(provider=entry["provider"], model=entry["model"])


def load_fallback_chains(path: Union[str, Path]) -> FallbackChainTable:
    """
    Load a chain table from a JSON file.

    Raises:
        OSError: File cannot be read
        ValueError: Malformed JSON or entries
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    chains_raw = raw.get("chains", raw) if isinstance(raw, dict) else None
    if not isinstance(chains_raw, dict):
        raise ValueError(f"{path}: expected an object of chains")

    chains = {
        name: [_parse_backend(entry) for entry in entries]
        for name, entries in chains_raw.items()
        if name != "routes"
    }
    routes = {}
    for route, name in (raw.get("routes") or {}).items():
        use_case, sep, priority = route.partition(":")
        if not sep:
            raise ValueError(f"{path}: route '{route}' must look like 'use_case:priority'")
        routes[(use_case, priority)] = name

    logger.info(f"Loaded {len(chains)} fallback chains from {path}")
    return FallbackChainTable(chains, routes)


def load_rate_limits(path: Union[str, Path]) -> dict[BackendId, RateLimitConfig]:
    """
    Load per-backend rate limits from a JSON file.

    Raises:
        OSError: File cannot be read
        ValueError: Malformed JSON or entries
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected an object keyed by 'provider:model'")
    limits = {
        BackendId.parse(key): RateLimitConfig.model_validate(value)
        for key, value in raw.items()
    }
    logger.info(f"Loaded rate limits for {len(limits)} backends from {path}")
    return limits
