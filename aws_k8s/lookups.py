"""Read-only AWS lookups shared by the components."""

from typing import Any, Optional

import pulumi
import pulumi_aws as aws

from aws_k8s.policy.trust import resolve_oidc_issuer


def invoke_opts(parent: Optional[pulumi.Resource]) -> Optional[pulumi.InvokeOptions]:
    return pulumi.InvokeOptions(parent=parent) if parent is not None else None


def zip_outputs(*values: pulumi.Input[Any]) -> pulumi.Output[list]:
    """Combine several inputs into one output of their resolved values."""
    return pulumi.Output.all(*values)


def get_partition(parent: Optional[pulumi.Resource] = None) -> pulumi.Output[str]:
    return aws.get_partition_output(opts=invoke_opts(parent)).partition


def get_dns_suffix(parent: Optional[pulumi.Resource] = None) -> pulumi.Output[str]:
    return aws.get_partition_output(opts=invoke_opts(parent)).dns_suffix


def get_region(parent: Optional[pulumi.Resource] = None) -> pulumi.Output[str]:
    return aws.get_region_output(opts=invoke_opts(parent)).name


def get_account_id(parent: Optional[pulumi.Resource] = None) -> pulumi.Output[str]:
    return aws.get_caller_identity_output(opts=invoke_opts(parent)).account_id


def get_cluster(cluster_name: pulumi.Input[str], parent: Optional[pulumi.Resource] = None):
    return aws.eks.get_cluster_output(name=cluster_name, opts=invoke_opts(parent))


def get_cluster_oidc_issuer(
    cluster_name: pulumi.Input[str],
    parent: Optional[pulumi.Resource] = None,
) -> pulumi.Output[str]:
    cluster = get_cluster(cluster_name, parent)
    return pulumi.Output.all(cluster_name, cluster.identities).apply(
        lambda args: resolve_oidc_issuer(args[0], args[1])
    )


def get_cluster_ip_family(
    cluster_name: pulumi.Input[str],
    parent: Optional[pulumi.Resource] = None,
) -> pulumi.Output[Optional[str]]:
    cluster = get_cluster(cluster_name, parent)
    return cluster.kubernetes_network_configs.apply(_first_ip_family)


def _first_ip_family(configs: Optional[list]) -> Optional[str]:
    if not configs:
        return None
    first = configs[0]
    if isinstance(first, dict):
        return first.get("ip_family") or first.get("ipFamily")
    return getattr(first, "ip_family", None)


def role_name_from_arn(arn: str) -> str:
    return arn.split("/")[-1]


def get_role_name(arn: pulumi.Input[str]) -> pulumi.Output[str]:
    return pulumi.Output.from_input(arn).apply(role_name_from_arn)
