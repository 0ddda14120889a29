"""
Prompt loader for stage agents.

System prompts live as ``prompts/{key}.txt`` next to this module. Loaded
prompts are cached per key.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"

_prompt_cache: dict[str, str] = {}


class PromptLoadError(Exception):
    """Exception raised when a prompt file cannot be loaded."""

    pass


def load_prompt(prompt_key: str, use_cache: bool = True) -> str:
    """
    Load a stage agent's system prompt.

    Args:
        prompt_key: Prompt name, e.g. 'intake' (an '_agent' suffix is ignored)
        use_cache: Whether to use cached prompts (default: True)

    Returns:
        System prompt text

    Raises:
        PromptLoadError: If the prompt file cannot be found or read
    """
    key = prompt_key[: -len("_agent")] if prompt_key.endswith("_agent") else prompt_key

    if use_cache and key in _prompt_cache:
        return _prompt_cache[key]

    prompt_file = PROMPTS_DIR / f"{key}.txt"
    try:
        prompt_text = prompt_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        error_msg = f"Prompt file not found for '{prompt_key}'. Expected file: {prompt_file}"
        logger.error(error_msg)
        raise PromptLoadError(error_msg) from None
    except OSError as e:
        error_msg = f"Could not read prompt for '{prompt_key}': {e}. File: {prompt_file}"
        logger.error(error_msg)
        raise PromptLoadError(error_msg) from e

    logger.info(f"Loaded prompt '{key}' from {prompt_file}")
    _prompt_cache[key] = prompt_text
    return prompt_text


def clear_prompt_cache() -> None:
    """Clear the prompt cache (tests, or prompts edited at runtime)."""
    _prompt_cache.clear()


def available_prompts() -> list[str]:
    """Prompt keys shipped with the package."""
    return sorted(p.stem for p in PROMPTS_DIR.glob("*.txt"))
