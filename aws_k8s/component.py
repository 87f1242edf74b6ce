from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

import pulumi

R = TypeVar("R", bound=pulumi.Resource)


@dataclass
class Component:
    """A named group of resources.

    Wraps a plain ``pulumi.ComponentResource`` that every child is parented
    to, and records the children so callers can depend on them explicitly.
    """

    resource: pulumi.ComponentResource
    children: list[pulumi.Resource] = field(default_factory=list)

    def opts(self, **kwargs: Any) -> pulumi.ResourceOptions:
        return pulumi.ResourceOptions(parent=self.resource, **kwargs)

    def add(self, child: R) -> R:
        self.children.append(child)
        return child

    def finish(self, outputs: dict[str, Any]) -> None:
        self.resource.register_outputs(outputs)


def open_component(
    type_token: str,
    name: str,
    opts: Optional[pulumi.ResourceOptions] = None,
) -> Component:
    return Component(resource=pulumi.ComponentResource(type_token, name, None, opts))
