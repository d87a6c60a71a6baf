from __future__ import annotations

from pathlib import Path
import re

from loguru import logger
from promptorium import load_prompt as promptorium_load_prompt

from shekelstream.core.config import (
    DEFAULT_TRANSLATION_PROMPT_KEY,
    TRANSLATION_PLACEHOLDER,
)


class PromptLoadError(Exception):
    """Raised when a prompt cannot be loaded from any configured source."""


_PROMPTS_DIR = Path(__file__).resolve().parent


def bundled_prompt_versions(prompt_key: str) -> dict[int, Path]:
    """Map version number to file for `<key>/<key>-<n>.md` prompts shipped here."""
    pattern = re.compile(rf"^{re.escape(prompt_key)}-(\d+)\.md$")
    prompt_dir = _PROMPTS_DIR / prompt_key
    if not prompt_dir.is_dir():
        return {}
    return {
        int(match.group(1)): path
        for path in prompt_dir.iterdir()
        if (match := pattern.match(path.name))
    }


def load_bundled_prompt(prompt_key: str, version: int | None = None) -> str | None:
    versions = bundled_prompt_versions(prompt_key)
    if not versions:
        return None
    chosen = versions.get(version) if version is not None else versions[max(versions)]
    return chosen.read_text(encoding="utf-8") if chosen else None


def load_shekelstream_prompt(prompt_key: str) -> str:
    """Load a prompt by key via Promptorium, with a bundled-file fallback."""
    try:
        prompt = promptorium_load_prompt(prompt_key)
    except Exception as error:  # noqa: BLE001
        logger.bind(prompt_key=prompt_key).debug(
            "Promptorium could not load {}: {}", prompt_key, error
        )
        prompt = None

    if isinstance(prompt, str):
        return prompt

    bundled = load_bundled_prompt(prompt_key)
    if bundled is None:
        raise PromptLoadError(f"Prompt not found: {prompt_key}")
    return bundled


def load_translation_prompt(override: str | None = None) -> str | None:
    """Resolve the translation prompt template.

    An override (usually `GPT_TRANSLATION_PROMPT`) wins; escaped `\\n`
    sequences from `.env` files become real newlines. Otherwise the
    `translate-descriptions` prompt is loaded. A template without the
    `<text_to_replace>` placeholder cannot be used and yields None.
    """
    if override and override.strip():
        template = override.replace("\\n", "\n")
    else:
        try:
            template = load_shekelstream_prompt(DEFAULT_TRANSLATION_PROMPT_KEY)
        except PromptLoadError as e:
            logger.warning("Translation prompt unavailable: {}", e)
            return None

    if TRANSLATION_PLACEHOLDER not in template:
        logger.warning(
            "Translation prompt has no {} placeholder, translation disabled",
            TRANSLATION_PLACEHOLDER,
        )
        return None
    return template
