"""Typed PowerShell pipelines.

A script is an ordered list of statements; each statement is a chain of
stages joined with `|`. Stages keep their parameters as typed values and
only become text in render(), so tests can assert on cmdlets and
parameters instead of diffing strings.

    >>> pipeline = (
    ...     PipelineBuilder()
    ...     .statement(Stage("Dismount-VHD", params={"Path": Path("C:/d.vhdx")}))
    ...     .build()
    ... )
    >>> pipeline.render()
    "$ErrorActionPreference = 'Stop' ; Dismount-VHD -Path 'C:/d.vhdx'"
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Self

# ASCII apostrophe plus the typographic quotes PowerShell also accepts as delimiters
_SINGLE_QUOTE_RE = re.compile("(['\u2018\u2019\u201a\u201b])")


def ps_quote(value: str) -> str:
    """Quote a string as a PowerShell single-quoted literal.

    Single-quoted strings are verbatim in PowerShell: the only escape is a
    doubled quote. PowerShell also ends the literal on U+2018..U+201B, so those
    are doubled too. Backslashes in Windows paths pass through untouched.
    """
    return "'" + _SINGLE_QUOTE_RE.sub(r"\1\1", value) + "'"


class _Switch:
    __slots__ = ()

    def __repr__(self) -> str:
        return "SWITCH"


SWITCH = _Switch()
"""Parameter value for switch parameters (`-PassThru`)."""


@dataclass(frozen=True)
class Raw:
    """Script text inserted without quoting (variables, script blocks, bare words)."""

    text: str


ParamValue = str | int | bool | PurePath | Raw | _Switch


def render_value(value: ParamValue) -> str:
    if isinstance(value, Raw):
        return value.text
    if isinstance(value, bool):
        return "$true" if value else "$false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, PurePath):
        return ps_quote(str(value))
    if isinstance(value, str):
        return ps_quote(value)
    raise TypeError(f"Cannot render {value!r} as a PowerShell argument")


def words(*tokens: str) -> tuple[Raw, ...]:
    """Bare positional words for native commands (`fsutil devdrv query`)."""
    return tuple(Raw(token) for token in tokens)


@dataclass(frozen=True)
class Stage:
    """One command invocation inside a pipeline."""

    command: str
    params: Mapping[str, ParamValue] = field(default_factory=dict)
    args: tuple[ParamValue, ...] = ()

    def render(self) -> str:
        parts = [self.command]
        for name, value in self.params.items():
            if value is SWITCH:
                parts.append(f"-{name}")
            elif isinstance(value, bool):
                # Switch-style binding: -Confirm:$false
                parts.append(f"-{name}:{render_value(value)}")
            else:
                parts.append(f"-{name} {render_value(value)}")
        parts.extend(render_value(arg) for arg in self.args)
        return " ".join(parts)

    def has(self, name: str) -> bool:
        return name in self.params

    def get(self, name: str) -> ParamValue | None:
        return self.params.get(name)


@dataclass(frozen=True)
class Statement:
    """Stages joined by `|`, optionally fed by and/or assigned to a variable."""

    stages: tuple[Stage, ...]
    assign_to: str | None = None
    source: str | None = None

    def render(self) -> str:
        chain = " | ".join(stage.render() for stage in self.stages)
        if self.source:
            chain = f"{self.source} | {chain}"
        if self.assign_to:
            chain = f"{self.assign_to} = {chain}"
        return chain


@dataclass(frozen=True)
class Pipeline:
    """An ordered script of statements, run as one PowerShell invocation."""

    statements: tuple[Statement, ...]
    stop_on_error: bool = True

    def render(self) -> str:
        parts = ["$ErrorActionPreference = 'Stop'"] if self.stop_on_error else []
        parts.extend(statement.render() for statement in self.statements)
        return " ; ".join(parts)

    @property
    def stages(self) -> list[Stage]:
        return [stage for statement in self.statements for stage in statement.stages]

    def commands(self) -> list[str]:
        """Command names in execution order."""
        return [stage.command for stage in self.stages]

    def find(self, command: str) -> Stage | None:
        """First stage running `command`, or None."""
        return next((stage for stage in self.stages if stage.command == command), None)

    def __str__(self) -> str:
        return self.render()


class PipelineBuilder:
    """Fluent builder for Pipeline."""

    def __init__(self, *, stop_on_error: bool = True) -> None:
        self._statements: list[Statement] = []
        self._stop_on_error = stop_on_error

    def statement(self, *stages: Stage, assign_to: str | None = None, source: str | None = None) -> Self:
        if not stages:
            raise ValueError("A statement needs at least one stage")
        self._statements.append(Statement(stages=stages, assign_to=assign_to, source=source))
        return self

    def build(self) -> Pipeline:
        if not self._statements:
            raise ValueError("A pipeline needs at least one statement")
        return Pipeline(statements=tuple(self._statements), stop_on_error=self._stop_on_error)
