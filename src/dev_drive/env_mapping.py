"""Derive extra job env vars from the Dev Drive paths.

Each entry is `NAME, TEMPLATE`, for example:

    CARGO_HOME, {{ DEV_DRIVE }}/.cargo
    npm_config_cache, {{ DEV_DRIVE_WORKSPACE }}/.npm

Templates must start with one of the exported variables and may only
reference variables that have a value. Bad entries are warned about and
skipped; they never fail the job.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from dev_drive._logging import get_logger
from dev_drive.constants import EnvVariables
from dev_drive.runner_state import RunnerState

logger = get_logger(__name__)

ENV_VAR_PATTERN = re.compile(r"^[a-zA-Z_]+[a-zA-Z0-9_]*$")
_ALLOWED_NAMES = [v.value for v in EnvVariables]
_TEMPLATE_START = re.compile(r"^{{\s*(" + "|".join(_ALLOWED_NAMES) + r")\s*}}")
_PLACEHOLDER = re.compile(r"{{\s*([^{}\s]*)\s*}}")


class TemplateError(ValueError):
    """A placeholder names a variable with no value."""


def split_keep(value: str, separator: str, limit: int) -> list[str]:
    """Like str.split with a limit, but always returns exactly `limit` parts.

    >>> split_keep("A, b,c", ",", 2)
    ['A', ' b,c']
    >>> split_keep("A", ",", 2)
    ['A', '']
    """
    if limit == 0:
        return []
    parts = value.split(separator, limit - 1)
    return parts + [""] * (limit - len(parts))


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute `{{ NAME }}` placeholders.

    Raises:
        TemplateError: A placeholder has no value in `values`
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            raise TemplateError(f"'{name}' not defined")
        return values[name]

    return _PLACEHOLDER.sub(substitute, template)


def parse_entry(entry: str, entry_number: int) -> tuple[str, str] | None:
    """Split and validate one entry; None (after a warning) if it is unusable."""
    raw_name, raw_template = split_keep(entry, ",", 2)
    # Inputs arrive trimmed per line, so only the inner edges need trimming
    name, template = raw_name.rstrip(), raw_template.lstrip()

    if not name or not template:
        logger.warning(f"Invalid env mapping at entry {entry_number}, is it missing ','?")
        return None

    if not ENV_VAR_PATTERN.match(name):
        logger.warning(
            f"Invalid environment variable `{raw_name}` at entry {entry_number}, "
            f"expected it to follow the pattern `{ENV_VAR_PATTERN.pattern}`."
        )
        return None

    if not _TEMPLATE_START.match(template):
        allowed = " or ".join(_ALLOWED_NAMES)
        logger.warning(
            f"Invalid template `{raw_template}` at entry {entry_number}, expected it to start with `{{{{ {allowed} }}}}`."
        )
        return None

    return name, template


async def process_env_mapping(
    entries: Iterable[str],
    values: Mapping[str, str],
    state: RunnerState,
) -> dict[str, str]:
    """Render every valid entry and export it; return what was exported."""
    exported: dict[str, str] = {}
    for entry_number, entry in enumerate(entries, start=1):
        if not entry.strip():
            continue
        parsed = parse_entry(entry, entry_number)
        if parsed is None:
            continue
        name, template = parsed

        try:
            result = render_template(template, values)
        except TemplateError:
            logger.warning(
                f"Unable to render dynamic value at entry {entry_number} for `{template}`. Was an option missing?"
            )
            continue

        await state.export_variable(name, result)
        exported[name] = result
        logger.debug(f"Exported new dynamic environment variable from entry {entry_number}: `{name}={result}`.")
    return exported
