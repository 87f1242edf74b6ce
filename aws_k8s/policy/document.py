"""IAM policy document model.

Statements are kept as plain frozen dataclasses so they can be built and
compared without a Pulumi engine. ``PolicyDocument.to_dict`` renders the
standard JSON policy shape (``Version``, ``Statement[]``).
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from aws_k8s.errors import ConfigurationError

POLICY_VERSION = "2012-10-17"

STRING_EQUALS = "StringEquals"
STRING_LIKE = "StringLike"
STRING_EQUALS_IF_EXISTS = "StringEqualsIfExists"
FOR_ALL_VALUES_STRING_EQUALS = "ForAllValues:StringEquals"
BOOL = "Bool"


@dataclass(frozen=True)
class Condition:
    """A single IAM condition: ``test`` is the comparison operator."""

    test: str
    variable: str
    values: tuple[str, ...]

    @classmethod
    def of(cls, test: str, variable: str, *values: str) -> "Condition":
        return cls(test=test, variable=variable, values=tuple(values))


@dataclass(frozen=True)
class Principal:
    type: str
    identifiers: tuple[str, ...]

    def to_dict(self) -> Any:
        if self.type == "*":
            return "*"
        identifiers = list(self.identifiers)
        return {self.type: identifiers[0] if len(identifiers) == 1 else identifiers}


@dataclass(frozen=True)
class Statement:
    effect: str
    actions: tuple[str, ...]
    resources: tuple[str, ...] = ()
    conditions: tuple[Condition, ...] = ()
    principals: tuple[Principal, ...] = ()
    sid: Optional[str] = None

    def conditions_for(self, variable_suffix: str) -> list[Condition]:
        """Return the conditions whose variable ends with ``variable_suffix``."""
        return [c for c in self.conditions if c.variable.endswith(variable_suffix)]

    def to_dict(self) -> dict[str, Any]:
        rendered: dict[str, Any] = {}
        if self.sid:
            rendered["Sid"] = self.sid
        rendered["Effect"] = self.effect
        if self.principals:
            principal: Any = {}
            for p in self.principals:
                value = p.to_dict()
                if value == "*":
                    principal = "*"
                    break
                principal.update(value)
            rendered["Principal"] = principal
        rendered["Action"] = list(self.actions)
        if self.resources:
            rendered["Resource"] = list(self.resources)
        if self.conditions:
            rendered["Condition"] = render_conditions(self.conditions)
        return rendered


def render_conditions(conditions: Sequence[Condition]) -> dict[str, dict[str, list[str]]]:
    """Group conditions under their operator, as IAM expects.

    Two conditions with the same operator and variable are merged; IAM would
    otherwise silently keep only the last key.
    """
    grouped: dict[str, dict[str, list[str]]] = {}
    for condition in conditions:
        by_variable = grouped.setdefault(condition.test, {})
        values = by_variable.setdefault(condition.variable, [])
        values.extend(v for v in condition.values if v not in values)
    return grouped


@dataclass(frozen=True)
class PolicyDocument:
    statements: tuple[Statement, ...]
    version: str = POLICY_VERSION

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for statement in self.statements:
            if statement.sid is None:
                continue
            if statement.sid in seen:
                raise ConfigurationError("Statement.Sid", f"duplicate sid {statement.sid!r}")
            seen.add(statement.sid)

    @property
    def sids(self) -> list[str]:
        return [s.sid for s in self.statements if s.sid]

    def statement(self, sid: str) -> Statement:
        for s in self.statements:
            if s.sid == sid:
                return s
        raise KeyError(sid)

    def to_dict(self) -> dict[str, Any]:
        return {
            "Version": self.version,
            "Statement": [s.to_dict() for s in self.statements],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class StatementTemplate:
    """A statement whose resources and condition variables are ARN templates.

    Templates use ``str.format`` fields (``{partition}``, ``{region}``,
    ``{cluster_name}``...) and are rendered against a scope mapping.
    """

    actions: tuple[str, ...]
    resources: tuple[str, ...]
    conditions: tuple[Condition, ...] = field(default_factory=tuple)
    effect: str = "Allow"

    def render(self, sid: str, scope: dict[str, str]) -> Statement:
        return Statement(
            sid=sid,
            effect=self.effect,
            actions=self.actions,
            resources=tuple(r.format(**scope) for r in self.resources),
            conditions=tuple(
                Condition(
                    test=c.test,
                    variable=c.variable.format(**scope),
                    values=tuple(v.format(**scope) for v in c.values),
                )
                for c in self.conditions
            ),
        )
