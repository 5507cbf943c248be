"""
Review prompt selection and rendering.

Templates are Markdown with optional YAML front matter and ``${variable}``
placeholders. The response-format block is appended to every rendered
prompt so custom templates cannot drop the JSON contract the parser relies on.
"""

import os
import re
from functools import lru_cache

import yaml
from loguru import logger

from models.review import PromptInfo

PROMPT_FILE = "code-review.md"
PROMPTS_DIR = os.path.join(os.path.dirname(__file__), "..", "prompts")

PROMPT_VARIABLES = ("diff", "title", "author", "source_branch", "target_branch")

# Placeholders used by templates written for the previous engine
_LEGACY_PLACEHOLDERS = {
    "{{.Diff}}": "${diff}",
    "{{.MRTitle}}": "${title}",
    "{{.MRAuthor}}": "${author}",
    "{{.SourceBranch}}": "${source_branch}",
    "{{.TargetBranch}}": "${target_branch}",
}

_VARIABLE_RE = re.compile(r"\$\{([a-zA-Z0-9_]+)\}")

_FALLBACK_TEMPLATE = """Please review the following code changes and provide structured feedback.

## Code Changes (Git Diff)
${diff}

Focus on security vulnerabilities, performance issues, potential bugs and maintainability."""

RESPONSE_FORMAT_INSTRUCTIONS = """## Response Format
Respond ONLY with valid JSON in the following shape:
{
  "summary": "Overall review summary (2-3 sentences)",
  "score": 75,
  "suggestions": [
    {
      "file_path": "path/to/file",
      "line_start": 10,
      "line_end": 15,
      "severity": "critical | high | medium | low",
      "category": "security | performance | style | logic | documentation | other",
      "description": "Detailed description of the issue",
      "suggestion": "Recommended fix or improvement",
      "code_snippet": "Original problematic code"
    }
  ]
}
"score" is an integer quality score from 0 to 100."""


def _strip_yaml_front_matter(content: str) -> tuple[str, dict]:
    """
    Remove YAML front matter from markdown content.

    Args:
        content: Raw file content including YAML markers

    Returns:
        Tuple of (content_without_yaml, parsed_metadata_dict)
    """
    if not content.startswith("---"):
        return content, {}

    parts = content.split("---", 2)
    if len(parts) != 3:
        return content.replace("---", "", 1), {}

    try:
        metadata = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError:
        logger.warning("Failed to parse YAML front matter, treating as plain text")
        metadata = {}
    if not isinstance(metadata, dict):
        metadata = {}
    return parts[2].strip(), metadata


def _substitute_variables(content: str, context: dict[str, str]) -> str:
    """
    Replace ${variable} placeholders with actual values in a single pass.

    Substituted values are not rescanned, so a diff containing ``${...}``
    is inserted verbatim.
    """

    def replacer(match):
        var_name = match.group(1)
        if var_name in context:
            return str(context[var_name])
        logger.warning(f"Variable ${{{var_name}}} not found in context, leaving placeholder")
        return match.group(0)

    return _VARIABLE_RE.sub(replacer, content)


def _upgrade_legacy_placeholders(template: str) -> str:
    for legacy, current in _LEGACY_PLACEHOLDERS.items():
        template = template.replace(legacy, current)
    return template


@lru_cache(maxsize=1)
def load_default_template() -> tuple[str, str]:
    """
    Load the built-in template from ``prompts/``.

    Returns:
        Tuple of (template, version); the in-code fallback is used when the
        file is missing or unreadable
    """
    file_path = os.path.join(PROMPTS_DIR, PROMPT_FILE)
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            content, metadata = _strip_yaml_front_matter(f.read())
        return content, str(metadata.get("version", "1.0"))
    except OSError as e:
        logger.warning(f"Error loading prompt file {file_path}: {e}, using fallback prompt")
        return _FALLBACK_TEMPLATE, "1.0"


def validate_template(template: str) -> None:
    """
    Check a custom template before it is stored.

    Raises:
        ValueError: If the template is blank or has no diff placeholder
    """
    if not template or not template.strip():
        raise ValueError("template cannot be empty")
    if "${diff}" not in _upgrade_legacy_placeholders(template):
        raise ValueError("template must contain the ${diff} placeholder")


def select_template(
    repository_prompt: str | None,
    project_prompt: str | None,
) -> tuple[str, PromptInfo]:
    """
    Pick the template for a review.

    Precedence: repository prompt, then project prompt (when it differs from
    the built-in one), then the built-in default.

    Returns:
        Tuple of (template, PromptInfo with source repository/custom/default)
    """
    default_template, version = load_default_template()

    if repository_prompt and repository_prompt.strip():
        return repository_prompt, PromptInfo(source="repository", version=version)

    if (
        project_prompt
        and project_prompt.strip()
        and project_prompt.strip() != default_template.strip()
    ):
        return project_prompt, PromptInfo(source="custom", version=version)

    return default_template, PromptInfo(source="default", version=version)


def render_prompt(template: str, variables: dict[str, str]) -> str:
    """
    Render a template into the user message sent to the model.

    Args:
        template: Template text with ``${variable}`` placeholders
        variables: Values for diff, title, author, source_branch, target_branch

    Returns:
        The rendered prompt followed by the response-format block. A template
        without a diff placeholder gets the diff appended as its own section.
    """
    template = _upgrade_legacy_placeholders(template)
    context = {name: variables.get(name, "") for name in PROMPT_VARIABLES}
    context.update(variables)

    rendered = _substitute_variables(template, context)
    if "${diff}" not in template:
        rendered = f"{rendered}\n\n## Code Changes (Git Diff)\n{context['diff']}"

    return f"{rendered.rstrip()}\n\n{RESPONSE_FORMAT_INSTRUCTIONS}"
