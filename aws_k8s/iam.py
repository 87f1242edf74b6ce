import logging
from typing import Optional, Sequence

import pulumi
import pulumi_aws as aws

from aws_k8s.args import RoleArgs
from aws_k8s.component import Component
from aws_k8s.descriptors import RoleDescriptor

logger = logging.getLogger(__name__)


def resolve_role_args(role_args: Optional[RoleArgs]) -> pulumi.Output[RoleArgs]:
    """Resolve every input on ``role_args`` so descriptor builders see plain values."""
    role_args = role_args or RoleArgs()
    return pulumi.Output.all(
        name=role_args.name,
        description=role_args.description,
        path=role_args.path,
        max_session_duration=role_args.max_session_duration,
        permissions_boundary=role_args.permissions_boundary,
        additional_managed_policy_arns=list(role_args.additional_managed_policy_arns),
        tags=dict(role_args.tags),
    ).apply(lambda resolved: RoleArgs(**resolved))


def create_role(
    name: str,
    descriptor: pulumi.Output[RoleDescriptor],
    component: Component,
    inline_policy_names: Sequence[str] = (),
    depends_on: Optional[list[pulumi.Resource]] = None,
) -> aws.iam.Role:
    """Create a role and its exclusive set of policy attachments from a descriptor.

    Inline policy names must be known up front because each one becomes its
    own resource.
    """
    logger.debug("Creating IAM role %s", name)

    role = component.add(
        aws.iam.Role(
            name,
            name=descriptor.apply(lambda d: d.name),
            description=descriptor.apply(lambda d: d.description),
            path=descriptor.apply(lambda d: d.path),
            max_session_duration=descriptor.apply(lambda d: d.max_session_duration),
            permissions_boundary=descriptor.apply(lambda d: d.permissions_boundary),
            assume_role_policy=descriptor.apply(lambda d: d.trust_document.to_json()),
            tags=descriptor.apply(lambda d: dict(d.tags)),
            opts=component.opts(depends_on=depends_on or []),
        )
    )

    component.add(
        aws.iam.RolePolicyAttachmentsExclusive(
            f"{name}-policy-attachments",
            role_name=role.name,
            policy_arns=descriptor.apply(lambda d: list(d.managed_policy_arns)),
            opts=component.opts(),
        )
    )

    for policy_name in inline_policy_names:
        component.add(
            aws.iam.RolePolicy(
                f"{name}-{policy_name}",
                role=role.id,
                name=policy_name,
                policy=descriptor.apply(lambda d, n=policy_name: d.inline_policies[n].to_json()),
                opts=component.opts(),
            )
        )

    return role
