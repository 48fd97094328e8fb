"""
Template Variable Substitution.

Renders text templates against a pipeline value:
  - {data.field} - Fields of the value being rendered (nested: {data.a.b})
  - {config.option} - Run configuration options and experiment flags

Missing data fields render as empty strings; missing config options are
errors.
"""

import re
from dataclasses import dataclass
from typing import Any

from .config import RunConfig


class TemplateError(Exception):
    """Error processing a template."""
    pass


# Match {namespace.field} or {namespace.field.subfield}
VARIABLE_PATTERN = re.compile(r'\{([a-zA-Z_][a-zA-Z0-9_]*)\.([a-zA-Z0-9_.]+)\}')


@dataclass
class TemplateVariable:
    """A parsed template variable."""
    full_match: str      # The full {namespace.field} string
    namespace: str       # "data" or "config"
    field: str           # The field name(s) after the namespace


def parse_template_variables(template: str) -> list[TemplateVariable]:
    """
    Parse all template variables from a string.

    Args:
        template: String containing {namespace.field} variables

    Returns:
        List of parsed variables
    """
    if not template:
        return []

    return [
        TemplateVariable(
            full_match=match.group(0),
            namespace=match.group(1),
            field=match.group(2),
        )
        for match in VARIABLE_PATTERN.finditer(template)
    ]


def validate_template(template: str, config: RunConfig | None) -> list[str]:
    """
    Check a template's {config.*} references against the run configuration.

    Args:
        template: The template string to validate
        config: Run configuration the template will be rendered with

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    for var in parse_template_variables(template):
        if var.namespace != "config":
            continue
        if config is None:
            errors.append(f"No configuration available for {var.full_match}")
        elif config.get_option(var.field) is None:
            errors.append(f"Config option not found: {var.full_match}")
    return errors


def get_nested_value(data: Any, path: str) -> Any:
    """Get a nested value using dot notation. List elements are addressed by index."""
    current = data
    for part in path.split('.'):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def format_value(value: Any) -> str:
    """
    Format a value for template substitution.

    Args:
        value: The value to format

    Returns:
        String representation
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(v) for v in value)
    if isinstance(value, dict):
        return ", ".join(f"{k}: {format_value(v)}" for k, v in value.items())
    return str(value)


def substitute_template(template: str, data: Any, config: RunConfig | None = None) -> str:
    """
    Substitute variables in a template string.

    Args:
        template: String with {namespace.field} variables
        data: The value being rendered
        config: Run configuration for {config.*} variables

    Returns:
        String with variables substituted

    Raises:
        TemplateError: If a variable cannot be resolved
    """
    if not template:
        return template

    def replacer(match: re.Match) -> str:
        namespace = match.group(1)
        field = match.group(2)

        if namespace == "data":
            return format_value(get_nested_value(data, field))

        if namespace == "config":
            if config is None:
                raise TemplateError(f"No configuration available for {match.group(0)}")
            value = config.get_option(field)
            if value is None:
                raise TemplateError(f"Config option not found: config.{field}")
            return format_value(value)

        # Unknown namespaces are left alone so literal braces survive
        return match.group(0)

    return VARIABLE_PATTERN.sub(replacer, template)
