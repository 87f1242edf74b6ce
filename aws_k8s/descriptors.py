"""Desired-state descriptors for roles, queues, clusters and addons.

Builders in this module are plain functions over resolved values. The Pulumi
wiring in ``cluster.py`` and ``karpenter.py`` resolves lookups first (through
``Output.all``) and hands the results to these builders, then turns the
descriptors into resources.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from aws_k8s.args import AddonConfiguration, AutoModeConfig, ClusterArgs, QueueArgs, RoleArgs
from aws_k8s.errors import ConfigurationError
from aws_k8s.models import EndpointType, IpFamily, SupportType, parse_enum
from aws_k8s.policy.cluster import (
    AUTO_MODE_NODE_POLICIES,
    CLUSTER_ENCRYPTION_POLICY_NAME,
    CLUSTER_ROLE_POLICIES,
    KARPENTER_NODE_POLICIES,
    cluster_encryption_policy,
    cni_ipv6_policy_arn,
    managed_policy_arns,
)
from aws_k8s.policy.document import PolicyDocument
from aws_k8s.policy.karpenter import QueueEncryptionMode, resolve_queue_encryption
from aws_k8s.policy.trust import NamespacedServiceAccount, irsa_trust_document, service_trust_document

logger = logging.getLogger(__name__)

DEFAULT_AUTO_MODE_NODE_POOLS = ("general-purpose", "system")


@dataclass(frozen=True)
class RoleDescriptor:
    trust_document: PolicyDocument
    managed_policy_arns: tuple[str, ...]
    inline_policies: Mapping[str, PolicyDocument] = field(default_factory=dict)
    name: Optional[str] = None
    description: Optional[str] = None
    path: Optional[str] = None
    max_session_duration: Optional[int] = None
    permissions_boundary: Optional[str] = None
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class QueueDescriptor:
    encryption_mode: QueueEncryptionMode
    name: Optional[Any] = None
    kms_master_key_id: Optional[Any] = None
    kms_data_key_reuse_period_seconds: Optional[int] = None
    tags: Mapping[str, Any] = field(default_factory=dict)

    @property
    def sqs_managed_sse_enabled(self) -> bool:
        return self.encryption_mode == QueueEncryptionMode.MANAGED_SSE


@dataclass(frozen=True)
class NetworkConfigDescriptor:
    ip_family: Optional[IpFamily] = None
    service_ipv4_cidr: Optional[str] = None
    service_ipv6_cidr: Optional[str] = None


@dataclass(frozen=True)
class EndpointAccess:
    private: bool
    public: bool


@dataclass(frozen=True)
class AutoModeDescriptor:
    enabled: bool
    node_pools: tuple[str, ...]
    node_role_arn: Optional[Any] = None


@dataclass(frozen=True)
class ClusterDescriptor:
    """Desired cluster state; ARNs may still be ``pulumi.Output`` values."""

    role_arn: Any
    subnet_ids: Any
    endpoint_access: EndpointAccess
    network_config: NetworkConfigDescriptor
    encryption_key_arn: Any
    auto_mode: AutoModeDescriptor
    name: Optional[Any] = None
    version: Optional[Any] = None
    security_group_ids: Optional[Any] = None
    zonal_shift_enabled: bool = False
    support_type: Optional[SupportType] = None
    addons: Mapping[str, AddonConfiguration] = field(default_factory=dict)
    tags: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AddonDescriptor:
    name: str
    version: Any
    configuration_values: Optional[str] = None
    pod_identity_associations: tuple = ()
    preserve: Optional[bool] = None
    resolve_conflicts_on_create: Optional[str] = None
    resolve_conflicts_on_update: Optional[str] = None
    service_account_role_arn: Optional[Any] = None
    tags: Mapping[str, Any] = field(default_factory=dict)


def merge_tags(*layers: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge tag maps left to right; later layers win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def _role(
    trust_document: PolicyDocument,
    policy_arns: Sequence[str],
    role_args: Optional[RoleArgs],
    tags: Optional[Mapping[str, str]],
    default_name: Optional[str] = None,
    inline_policies: Optional[Mapping[str, PolicyDocument]] = None,
) -> RoleDescriptor:
    role_args = role_args or RoleArgs()
    return RoleDescriptor(
        name=role_args.name or default_name,
        description=role_args.description,
        path=role_args.path,
        max_session_duration=role_args.max_session_duration,
        permissions_boundary=role_args.permissions_boundary,
        trust_document=trust_document,
        managed_policy_arns=tuple([*role_args.additional_managed_policy_arns, *policy_arns]),
        inline_policies=dict(inline_policies or {}),
        tags=merge_tags(tags, role_args.tags),
    )


def cluster_role_descriptor(
    partition: str,
    dns_suffix: str,
    encryption_key_arn: str,
    tags: Optional[Mapping[str, str]] = None,
) -> RoleDescriptor:
    return _role(
        service_trust_document("eks", dns_suffix),
        managed_policy_arns(partition, CLUSTER_ROLE_POLICIES),
        None,
        tags,
        inline_policies={CLUSTER_ENCRYPTION_POLICY_NAME: cluster_encryption_policy(encryption_key_arn)},
    )


def auto_mode_role_descriptor(
    partition: str,
    dns_suffix: str,
    tags: Optional[Mapping[str, str]] = None,
) -> RoleDescriptor:
    return _role(
        service_trust_document("ec2", dns_suffix),
        managed_policy_arns(partition, AUTO_MODE_NODE_POLICIES),
        None,
        tags,
    )


def karpenter_node_role_descriptor(
    cluster_name: str,
    partition: str,
    dns_suffix: str,
    account_id: str,
    ip_family: Optional[str] = None,
    role_args: Optional[RoleArgs] = None,
    tags: Optional[Mapping[str, str]] = None,
) -> RoleDescriptor:
    """Role assumed by the EC2 instances Karpenter launches.

    IPv6 clusters additionally need the account-local CNI IPv6 policy.
    """
    policy_arns = []
    if ip_family == IpFamily.IPV6.value:
        policy_arns.append(cni_ipv6_policy_arn(partition, account_id))
    policy_arns.extend(managed_policy_arns(partition, KARPENTER_NODE_POLICIES))

    return _role(
        service_trust_document("ec2", dns_suffix),
        policy_arns,
        role_args,
        tags,
        default_name=f"Karpenter-{cluster_name}",
    )


def karpenter_controller_role_descriptor(
    dns_suffix: str,
    controller_policy_arn: str,
    role_args: Optional[RoleArgs] = None,
    tags: Optional[Mapping[str, str]] = None,
) -> RoleDescriptor:
    # Assumed through EKS Pod Identity, not IRSA.
    return _role(
        service_trust_document("pods.eks", dns_suffix),
        [controller_policy_arn],
        role_args,
        tags,
    )


def irsa_role_descriptor(
    issuer: str,
    partition: str,
    account_id: str,
    service_accounts: Sequence[NamespacedServiceAccount] = (),
    policy_arns: Sequence[str] = (),
    role_args: Optional[RoleArgs] = None,
    tags: Optional[Mapping[str, str]] = None,
) -> RoleDescriptor:
    return _role(
        irsa_trust_document(issuer, partition, account_id, service_accounts),
        policy_arns,
        role_args,
        tags,
    )


def queue_descriptor(queue: Optional[QueueArgs], parent_tags: Optional[Mapping[str, Any]] = None) -> QueueDescriptor:
    queue = queue or QueueArgs()
    mode = resolve_queue_encryption(
        queue.managed_sse_enabled,
        queue.kms_master_key_id,
        queue.kms_data_key_reuse_period_seconds,
    )
    logger.debug("Interruption queue encryption mode: %s", mode.value)

    return QueueDescriptor(
        name=queue.name,
        encryption_mode=mode,
        kms_master_key_id=queue.kms_master_key_id,
        kms_data_key_reuse_period_seconds=queue.kms_data_key_reuse_period_seconds,
        tags=merge_tags(parent_tags, queue.tags),
    )


def network_config(ip_family: Optional[str], service_cidr: Optional[str]) -> NetworkConfigDescriptor:
    """Attach the service CIDR to the IPv4 or IPv6 field, never both."""
    if ip_family is None:
        return NetworkConfigDescriptor()

    family = parse_enum(IpFamily, ip_family, "network_config.ip_family")
    if not service_cidr:
        return NetworkConfigDescriptor(ip_family=family)

    if family == IpFamily.IPV4:
        return NetworkConfigDescriptor(ip_family=family, service_ipv4_cidr=service_cidr)
    return NetworkConfigDescriptor(ip_family=family, service_ipv6_cidr=service_cidr)


def endpoint_access(endpoints: Optional[Sequence[str]]) -> EndpointAccess:
    if endpoints is None:
        return EndpointAccess(private=False, public=True)

    resolved = {parse_enum(EndpointType, e, "vpc_config.api_server_endpoints") for e in endpoints}
    if not resolved:
        raise ConfigurationError("vpc_config.api_server_endpoints", "at least one endpoint type is required")
    return EndpointAccess(
        private=EndpointType.PRIVATE in resolved,
        public=EndpointType.PUBLIC in resolved,
    )


def auto_mode_descriptor(auto_mode: Optional[AutoModeConfig], node_role_arn: Optional[Any]) -> AutoModeDescriptor:
    auto_mode = auto_mode or AutoModeConfig(enabled=False)
    if not auto_mode.enabled:
        return AutoModeDescriptor(enabled=False, node_pools=())
    return AutoModeDescriptor(
        enabled=True,
        node_pools=tuple(auto_mode.node_pools or DEFAULT_AUTO_MODE_NODE_POOLS),
        node_role_arn=node_role_arn,
    )


def validate_cluster_args(args: ClusterArgs) -> None:
    """Fail fast on inputs that would otherwise surface as provider errors."""
    if args.vpc_config is None:
        raise ConfigurationError("vpc_config", "vpc_config is required")
    if args.vpc_config.subnet_ids is None:
        raise ConfigurationError("vpc_config.subnet_ids", "at least one subnet is required")
    if isinstance(args.vpc_config.subnet_ids, (list, tuple)) and not args.vpc_config.subnet_ids:
        raise ConfigurationError("vpc_config.subnet_ids", "at least one subnet is required")


def cluster_descriptor(
    args: ClusterArgs,
    role_arn: Any,
    encryption_key_arn: Any,
    auto_mode_role_arn: Optional[Any] = None,
) -> ClusterDescriptor:
    validate_cluster_args(args)

    network = args.network_config
    return ClusterDescriptor(
        name=args.name,
        version=args.version,
        role_arn=role_arn,
        subnet_ids=args.vpc_config.subnet_ids,
        security_group_ids=args.vpc_config.cluster_security_group_ids,
        endpoint_access=endpoint_access(args.vpc_config.api_server_endpoints),
        network_config=network_config(
            network.ip_family if network else None,
            network.service_cidr if network else None,
        ),
        encryption_key_arn=encryption_key_arn,
        auto_mode=auto_mode_descriptor(args.auto_mode, auto_mode_role_arn),
        zonal_shift_enabled=bool(args.zonal_shift_config and args.zonal_shift_config.enabled),
        support_type=(
            parse_enum(SupportType, args.support_type, "support_type") if args.support_type else None
        ),
        addons=dict(args.addons),
        tags=dict(args.tags),
    )


def addon_descriptor(name: str, config: AddonConfiguration, version: Any) -> AddonDescriptor:
    return AddonDescriptor(
        name=name,
        version=version,
        configuration_values=(
            json.dumps(config.configuration_values) if config.configuration_values else None
        ),
        pod_identity_associations=tuple(config.pod_identity_associations or ()),
        preserve=config.preserve,
        resolve_conflicts_on_create=config.resolve_conflicts_on_create,
        resolve_conflicts_on_update=config.resolve_conflicts_on_update,
        service_account_role_arn=config.service_account_role_arn,
        tags=dict(config.tags),
    )
