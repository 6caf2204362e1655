"""
AromaChat - Prompt Manager.

Loads YAML prompt configurations from the prompts/ directory, validates and
caches them, and renders their templates.

A prompt file looks like:

    version: "1.0.0"
    description: ...
    config: {model: gpt-4o-mini, temperature: 0.3, max_tokens: 1500}
    template: |
      ...{{healthConcern}}...
    schema: {...JSON schema of the structured output...}

Template syntax (a small Handlebars subset):
- {{name}}                         variable substitution
- {{#each items}}...{{/each}}      loop; inside: {{this}}, {{@index}},
                                   {{@last}}, and item keys ({{name}})
- {{#unless @last}}...{{/unless}}  inside a loop, omitted on the last item

Unknown variables are left in place.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

REQUIRED_FIELDS = ("version", "description", "config", "template", "schema")
REQUIRED_CONFIG_FIELDS = ("model", "temperature", "max_tokens")

_VARIABLE = re.compile(r"\{\{(\w+)\}\}")
_EACH = re.compile(r"\{\{#each\s+(\w+)\}\}(.*?)\{\{/each\}\}", re.DOTALL)
_UNLESS_LAST = re.compile(r"\{\{#unless\s+@last\}\}(.*?)\{\{/unless\}\}", re.DOTALL)


class PromptManagerError(Exception):
    """Prompt loading/processing failure. `code` is LOAD_ERROR, VALIDATION_ERROR or TEMPLATE_ERROR."""

    def __init__(self, message: str, code: str, prompt_name: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.prompt_name = prompt_name


def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


class PromptManager:
    def __init__(self, prompts_dir: Path | str = PROMPTS_DIR):
        self.prompts_dir = Path(prompts_dir)
        self._cache: dict[str, dict] = {}

    def load_prompt_config(self, prompt_name: str) -> dict:
        """Load, validate and cache `<prompts_dir>/<prompt_name>.yaml`."""
        if prompt_name in self._cache:
            return self._cache[prompt_name]

        path = self.prompts_dir / f"{prompt_name}.yaml"
        try:
            config = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load prompt configuration {path}: {e}")
            raise PromptManagerError(
                f"Failed to load prompt configuration: {prompt_name}", "LOAD_ERROR", prompt_name
            ) from e

        self._validate(config, prompt_name)
        self._cache[prompt_name] = config
        logger.debug(f"Loaded prompt '{prompt_name}' v{config['version']}")
        return config

    @staticmethod
    def _validate(config: Any, prompt_name: str) -> None:
        def fail(message: str) -> PromptManagerError:
            return PromptManagerError(message, "VALIDATION_ERROR", prompt_name)

        if not isinstance(config, dict):
            raise fail("Prompt configuration must be a mapping")

        for name in REQUIRED_FIELDS:
            if name not in config:
                raise fail(f"Missing required field '{name}' in prompt configuration")

        if not isinstance(config["config"], dict):
            raise fail("Invalid config section in prompt configuration")
        for name in REQUIRED_CONFIG_FIELDS:
            if name not in config["config"]:
                raise fail(f"Missing required config field '{name}' in prompt configuration")

        if not isinstance(config["template"], str) or not config["template"].strip():
            raise fail("Template must be a non-empty string")

        if not isinstance(config["schema"], dict) or not config["schema"]:
            raise fail("Schema must be a valid object")

    def process_template(self, template: str, variables: dict[str, Any]) -> str:
        """Render loops, then plain variables."""
        try:
            def render_each(match: re.Match) -> str:
                name, body = match.group(1), match.group(2)
                items = variables.get(name)
                if not isinstance(items, (list, tuple)):
                    return match.group(0)

                parts = []
                last_index = len(items) - 1
                for index, item in enumerate(items):
                    is_last = index == last_index
                    chunk = _UNLESS_LAST.sub(lambda m: "" if is_last else m.group(1), body)
                    chunk = chunk.replace("{{this}}", _fmt(item))
                    chunk = chunk.replace("{{@index}}", str(index))
                    chunk = chunk.replace("{{@last}}", _fmt(is_last))
                    if isinstance(item, dict):
                        for key, value in item.items():
                            chunk = chunk.replace(f"{{{{{key}}}}}", _fmt(value))
                    parts.append(chunk)
                return "".join(parts)

            rendered = _EACH.sub(render_each, template)
            # Stray unless blocks outside a loop are kept
            rendered = _UNLESS_LAST.sub(lambda m: m.group(1), rendered)
            return _VARIABLE.sub(
                lambda m: _fmt(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
                rendered,
            )
        except (TypeError, ValueError, re.error) as e:
            raise PromptManagerError("Failed to process template variables", "TEMPLATE_ERROR") from e

    def get_processed_prompt(self, prompt_name: str, variables: dict[str, Any]) -> tuple[str, dict]:
        """Return (rendered template, prompt config)."""
        config = self.load_prompt_config(prompt_name)
        try:
            return self.process_template(config["template"], variables), config
        except PromptManagerError as e:
            e.prompt_name = prompt_name
            raise

    def clear_cache(self) -> None:
        self._cache.clear()

    def cached_prompts(self) -> list[str]:
        return list(self._cache)


@lru_cache
def get_prompt_manager() -> PromptManager:
    return PromptManager()
