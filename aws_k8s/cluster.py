"""EKS cluster component."""

import logging
from dataclasses import dataclass, field
from typing import Optional

import pulumi
import pulumi_aws as aws
import pulumi_tls as tls

from aws_k8s.args import AddonConfiguration, ClusterArgs
from aws_k8s.component import Component, open_component
from aws_k8s.descriptors import (
    AddonDescriptor,
    ClusterDescriptor,
    addon_descriptor,
    auto_mode_role_descriptor,
    cluster_descriptor,
    cluster_role_descriptor,
    validate_cluster_args,
)
from aws_k8s.errors import AddonVersionLookupError
from aws_k8s.iam import create_role
from aws_k8s.lookups import get_dns_suffix, get_partition, invoke_opts
from aws_k8s.policy.cluster import CLUSTER_ENCRYPTION_POLICY_NAME, cluster_admin_access_policy_arn
from aws_k8s.policy.trust import STS_AUDIENCE

logger = logging.getLogger(__name__)


@dataclass
class Cluster:
    component: Component
    eks_cluster: aws.eks.Cluster
    cluster_security_group_id: pulumi.Output[str]
    encryption_key_arn: pulumi.Output[str]
    cluster_role_arn: pulumi.Output[str]
    auto_mode_role_arn: Optional[pulumi.Output[str]]
    addons: dict[str, aws.eks.Addon] = field(default_factory=dict)
    installed_addons: Optional[pulumi.Output[list]] = None
    cluster_admins: Optional[pulumi.Output[list]] = None
    oidc_provider: Optional[aws.iam.OpenIdConnectProvider] = None

    @property
    def name(self) -> pulumi.Output[str]:
        return self.eks_cluster.name


def _encryption_key_arn(name: str, args: ClusterArgs, component: Component) -> pulumi.Output[str]:
    if args.encryption_key_arn is not None:
        return pulumi.Output.from_input(args.encryption_key_arn)

    key = component.add(
        aws.kms.Key(
            f"{name}-secrets-key",
            description=f"KMS key for EKS secrets encryption - {name}",
            enable_key_rotation=True,
            tags={"Name": f"{name}-secrets-key", **args.tags},
            opts=component.opts(),
        )
    )
    return key.arn


def _cluster_role_arn(
    name: str,
    args: ClusterArgs,
    component: Component,
    encryption_key_arn: pulumi.Output[str],
) -> pulumi.Output[str]:
    if args.role_arn is not None:
        return pulumi.Output.from_input(args.role_arn)

    parent = component.resource
    descriptor = pulumi.Output.all(
        partition=get_partition(parent),
        dns_suffix=get_dns_suffix(parent),
        encryption_key_arn=encryption_key_arn,
        tags=dict(args.tags),
    ).apply(lambda a: cluster_role_descriptor(**a))

    role = create_role(
        f"{name}-cluster-role",
        descriptor,
        component,
        inline_policy_names=[CLUSTER_ENCRYPTION_POLICY_NAME],
    )
    return role.arn


def _auto_mode_role_arn(name: str, args: ClusterArgs, component: Component) -> Optional[pulumi.Output[str]]:
    auto_mode = args.auto_mode
    if auto_mode is None or not auto_mode.enabled:
        return None
    if auto_mode.node_role_arn is not None:
        return pulumi.Output.from_input(auto_mode.node_role_arn)

    parent = component.resource
    descriptor = pulumi.Output.all(
        partition=get_partition(parent),
        dns_suffix=get_dns_suffix(parent),
        tags=dict(args.tags),
    ).apply(lambda a: auto_mode_role_descriptor(**a))

    return create_role(f"{name}-auto-mode-node-role", descriptor, component).arn


def _cluster_resource_args(descriptor: ClusterDescriptor) -> dict:
    network = descriptor.network_config
    auto_mode = descriptor.auto_mode

    cluster_args: dict = {
        "name": descriptor.name,
        "role_arn": descriptor.role_arn,
        "version": descriptor.version,
        "vpc_config": aws.eks.ClusterVpcConfigArgs(
            subnet_ids=descriptor.subnet_ids,
            security_group_ids=descriptor.security_group_ids,
            endpoint_private_access=descriptor.endpoint_access.private,
            endpoint_public_access=descriptor.endpoint_access.public,
        ),
        "zonal_shift_config": aws.eks.ClusterZonalShiftConfigArgs(
            enabled=descriptor.zonal_shift_enabled,
        ),
        "kubernetes_network_config": aws.eks.ClusterKubernetesNetworkConfigArgs(
            elastic_load_balancing=aws.eks.ClusterKubernetesNetworkConfigElasticLoadBalancingArgs(
                enabled=auto_mode.enabled,
            ),
            ip_family=network.ip_family.value if network.ip_family else None,
            service_ipv4_cidr=network.service_ipv4_cidr,
            service_ipv6_cidr=network.service_ipv6_cidr,
        ),
        "storage_config": aws.eks.ClusterStorageConfigArgs(
            block_storage=aws.eks.ClusterStorageConfigBlockStorageArgs(
                enabled=auto_mode.enabled,
            ),
        ),
        # Addons are managed explicitly through the ``addons`` argument.
        "bootstrap_self_managed_addons": False,
        "access_config": aws.eks.ClusterAccessConfigArgs(
            authentication_mode="API",
            bootstrap_cluster_creator_admin_permissions=False,
        ),
        "encryption_config": aws.eks.ClusterEncryptionConfigArgs(
            provider=aws.eks.ClusterEncryptionConfigProviderArgs(
                key_arn=descriptor.encryption_key_arn,
            ),
            resources=["secrets"],
        ),
        "compute_config": aws.eks.ClusterComputeConfigArgs(
            enabled=auto_mode.enabled,
            node_pools=list(auto_mode.node_pools) or None,
            node_role_arn=auto_mode.node_role_arn,
        ),
        "tags": dict(descriptor.tags),
    }

    if descriptor.support_type is not None:
        cluster_args["upgrade_policy"] = aws.eks.ClusterUpgradePolicyArgs(
            support_type=descriptor.support_type.value,
        )

    return cluster_args


def _create_cluster_admin(
    name: str,
    eks_cluster: aws.eks.Cluster,
    component: Component,
    tags: dict,
) -> aws.eks.AccessPolicyAssociation:
    """Grant the identity running the deployment cluster admin through an access entry.

    Assumed-role sessions are resolved to their issuing role so the entry
    survives session renewal.
    """
    lookup_opts = invoke_opts(component.resource)
    caller = aws.get_caller_identity_output(opts=lookup_opts)
    creator_arn = aws.iam.get_session_context_output(arn=caller.arn, opts=lookup_opts).issuer_arn

    access_entry = component.add(
        aws.eks.AccessEntry(
            f"{name}-cluster-creator",
            cluster_name=eks_cluster.name,
            principal_arn=creator_arn,
            type="STANDARD",
            tags=tags,
            opts=component.opts(depends_on=[eks_cluster]),
        )
    )

    return component.add(
        aws.eks.AccessPolicyAssociation(
            f"{name}-cluster-creator-admin",
            cluster_name=eks_cluster.name,
            principal_arn=access_entry.principal_arn,
            policy_arn=get_partition(component.resource).apply(cluster_admin_access_policy_arn),
            access_scope=aws.eks.AccessPolicyAssociationAccessScopeArgs(type="cluster"),
            opts=component.opts(depends_on=[access_entry]),
        )
    )


def _require_addon_version(cluster_name: Optional[str], addon_name: str, version: Optional[str]) -> str:
    if not version:
        raise AddonVersionLookupError(
            cluster_name,
            f"No version of addon {addon_name} is available for cluster {cluster_name}",
        )
    return version


def _addon_version(
    addon_name: str,
    config: AddonConfiguration,
    eks_cluster: aws.eks.Cluster,
    component: Component,
) -> pulumi.Input[str]:
    if config.addon_version is not None:
        return config.addon_version

    lookup = aws.eks.get_addon_version_output(
        addon_name=addon_name,
        kubernetes_version=eks_cluster.version,
        most_recent=config.most_recent,
        opts=invoke_opts(component.resource),
    )
    return pulumi.Output.all(eks_cluster.name, lookup.version).apply(
        lambda a: _require_addon_version(a[0], addon_name, a[1])
    )


def _create_addon(
    name: str,
    descriptor: AddonDescriptor,
    eks_cluster: aws.eks.Cluster,
    component: Component,
) -> aws.eks.Addon:
    logger.debug("Creating EKS addon %s for %s", descriptor.name, name)

    return component.add(
        aws.eks.Addon(
            f"{name}-{descriptor.name}",
            cluster_name=eks_cluster.name,
            addon_name=descriptor.name,
            addon_version=descriptor.version,
            configuration_values=descriptor.configuration_values,
            pod_identity_associations=list(descriptor.pod_identity_associations) or None,
            preserve=descriptor.preserve,
            resolve_conflicts_on_create=descriptor.resolve_conflicts_on_create,
            resolve_conflicts_on_update=descriptor.resolve_conflicts_on_update,
            service_account_role_arn=descriptor.service_account_role_arn,
            tags=dict(descriptor.tags),
            opts=component.opts(depends_on=[eks_cluster]),
        )
    )


def _create_oidc_provider(
    name: str,
    eks_cluster: aws.eks.Cluster,
    component: Component,
    tags: dict,
) -> aws.iam.OpenIdConnectProvider:
    """Register the cluster's OIDC issuer with IAM so IRSA roles can trust it."""
    oidc_issuer = eks_cluster.identities[0].oidcs[0].issuer

    tls_cert = tls.get_certificate_output(url=oidc_issuer, opts=invoke_opts(component.resource))
    thumbprint = tls_cert.certificates.apply(lambda certs: certs[0].sha1_fingerprint)

    return component.add(
        aws.iam.OpenIdConnectProvider(
            f"{name}-oidc-provider",
            url=oidc_issuer,
            client_id_lists=[STS_AUDIENCE],
            thumbprint_lists=[thumbprint],
            tags={"Name": f"{name}-oidc-provider", **tags},
            opts=component.opts(depends_on=[eks_cluster]),
        )
    )


def create_cluster(
    name: str,
    args: ClusterArgs,
    opts: Optional[pulumi.ResourceOptions] = None,
) -> Cluster:
    """Create an EKS cluster with its IAM roles, encryption key, access entries and addons.

    Inputs are validated before any resource is registered, so a bad
    configuration never leaves a half-built component behind.
    """
    validate_cluster_args(args)

    component = open_component("aws-k8s:index:Cluster", name, opts)
    tags = dict(args.tags)

    encryption_key_arn = _encryption_key_arn(name, args, component)
    cluster_role_arn = _cluster_role_arn(name, args, component, encryption_key_arn)
    auto_mode_role_arn = _auto_mode_role_arn(name, args, component)

    descriptor = cluster_descriptor(args, cluster_role_arn, encryption_key_arn, auto_mode_role_arn)
    logger.info(
        "Creating EKS cluster %s (auto mode: %s, addons: %s)",
        name,
        descriptor.auto_mode.enabled,
        ", ".join(descriptor.addons) or "none",
    )

    eks_cluster = component.add(
        aws.eks.Cluster(
            name,
            **_cluster_resource_args(descriptor),
            opts=component.opts(depends_on=list(component.children)),
        )
    )

    admin = _create_cluster_admin(name, eks_cluster, component, tags)

    addons = {
        addon_name: _create_addon(
            name,
            addon_descriptor(addon_name, config, _addon_version(addon_name, config, eks_cluster, component)),
            eks_cluster,
            component,
        )
        for addon_name, config in descriptor.addons.items()
    }

    oidc_provider = None
    if args.create_oidc_provider:
        oidc_provider = _create_oidc_provider(name, eks_cluster, component, tags)

    result = Cluster(
        component=component,
        eks_cluster=eks_cluster,
        cluster_security_group_id=eks_cluster.vpc_config.cluster_security_group_id,
        encryption_key_arn=encryption_key_arn,
        cluster_role_arn=cluster_role_arn,
        auto_mode_role_arn=auto_mode_role_arn,
        addons=addons,
        installed_addons=pulumi.Output.all(*[addon.addon_name for addon in addons.values()]),
        cluster_admins=pulumi.Output.all(admin.principal_arn),
        oidc_provider=oidc_provider,
    )

    outputs = {
        "eks_cluster": eks_cluster,
        "cluster_security_group_id": result.cluster_security_group_id,
        "encryption_key_arn": encryption_key_arn,
        "cluster_role_arn": cluster_role_arn,
        "installed_addons": result.installed_addons,
        "cluster_admins": result.cluster_admins,
    }
    if oidc_provider is not None:
        outputs["oidc_provider_arn"] = oidc_provider.arn
    component.finish(outputs)

    return result
