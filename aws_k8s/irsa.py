"""IAM roles for Kubernetes service accounts (IRSA)."""

import logging
from dataclasses import dataclass
from typing import Optional

import pulumi
import pulumi_aws as aws

from aws_k8s.args import IrsaRoleArgs
from aws_k8s.component import Component, open_component
from aws_k8s.descriptors import irsa_role_descriptor
from aws_k8s.lookups import get_account_id, get_cluster_oidc_issuer, get_partition

logger = logging.getLogger(__name__)


@dataclass
class IrsaRole:
    component: Component
    role: aws.iam.Role


def create_irsa_role(
    name: str,
    args: IrsaRoleArgs,
    opts: Optional[pulumi.ResourceOptions] = None,
) -> IrsaRole:
    """Create a role trusted by the cluster's OIDC provider.

    Only the listed service accounts may assume it. With no service accounts
    the trust is limited by audience alone, which any pod in the cluster
    satisfies.
    """
    component = open_component("aws-k8s:index:IrsaRole", name, opts)
    parent = component.resource
    logger.debug("Creating IRSA role %s for %d service account(s)", name, len(args.service_accounts))

    descriptor = pulumi.Output.all(
        issuer=get_cluster_oidc_issuer(args.cluster_name, parent),
        partition=get_partition(parent),
        account_id=get_account_id(parent),
        policy_arns=list(args.managed_policy_arns),
    ).apply(
        lambda a: irsa_role_descriptor(
            a["issuer"],
            a["partition"],
            a["account_id"],
            service_accounts=args.service_accounts,
            policy_arns=a["policy_arns"],
        )
    )

    role = component.add(
        aws.iam.Role(
            name,
            name=args.name,
            name_prefix=args.name_prefix,
            description=args.description,
            path=args.path,
            max_session_duration=args.max_session_duration,
            permissions_boundary=args.permissions_boundary,
            force_detach_policies=args.force_detach_policies,
            assume_role_policy=descriptor.apply(lambda d: d.trust_document.to_json()),
            tags=dict(args.tags),
            opts=component.opts(),
        )
    )

    if args.managed_policy_arns:
        component.add(
            aws.iam.RolePolicyAttachmentsExclusive(
                f"{name}-policy-attachments",
                role_name=role.name,
                policy_arns=descriptor.apply(lambda d: list(d.managed_policy_arns)),
                opts=component.opts(),
            )
        )

    for policy_name, policy in args.inline_policies.items():
        component.add(
            aws.iam.RolePolicy(
                f"{name}-{policy_name}",
                role=role.id,
                name=policy_name,
                policy=policy,
                opts=component.opts(),
            )
        )

    component.finish({"role": role})
    return IrsaRole(component=component, role=role)
