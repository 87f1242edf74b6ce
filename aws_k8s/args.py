"""Input arguments for the cluster, Karpenter and IRSA components.

These are dataclasses rather than pydantic models because most fields accept
``pulumi.Input`` values that are only known once the engine resolves them.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

import pulumi

from aws_k8s.models import EndpointType, IpFamily, SupportType
from aws_k8s.policy.trust import NamespacedServiceAccount

Tags = Mapping[str, pulumi.Input[str]]


@dataclass
class RoleArgs:
    """Overrides for an IAM role the component creates on the caller's behalf."""

    name: Optional[pulumi.Input[str]] = None
    description: Optional[pulumi.Input[str]] = None
    path: Optional[pulumi.Input[str]] = None
    # 3600 to 43200 seconds
    max_session_duration: Optional[pulumi.Input[int]] = None
    permissions_boundary: Optional[pulumi.Input[str]] = None
    additional_managed_policy_arns: Sequence[pulumi.Input[str]] = field(default_factory=list)
    tags: Tags = field(default_factory=dict)


@dataclass
class QueueArgs:
    """Interruption queue settings.

    ``managed_sse_enabled`` must not be combined with ``kms_master_key_id`` or
    ``kms_data_key_reuse_period_seconds``.
    """

    name: Optional[pulumi.Input[str]] = None
    managed_sse_enabled: Optional[bool] = None
    kms_master_key_id: Optional[pulumi.Input[str]] = None
    kms_data_key_reuse_period_seconds: Optional[int] = None
    tags: Tags = field(default_factory=dict)


@dataclass
class VpcConfig:
    subnet_ids: pulumi.Input[Sequence[pulumi.Input[str]]]
    cluster_security_group_ids: Optional[pulumi.Input[Sequence[pulumi.Input[str]]]] = None
    # Defaults to public only.
    api_server_endpoints: Optional[Sequence[Union[EndpointType, str]]] = None


@dataclass
class NetworkConfig:
    ip_family: Union[IpFamily, str]
    service_cidr: str


@dataclass
class ZonalShiftConfig:
    enabled: bool = False


@dataclass
class AutoModeConfig:
    enabled: bool = True
    node_pools: Optional[Sequence[str]] = None
    node_role_arn: Optional[pulumi.Input[str]] = None


@dataclass
class AddonConfiguration:
    """Configuration for one EKS managed addon, keyed by addon name on the cluster."""

    addon_version: Optional[pulumi.Input[str]] = None
    # Only consulted when addon_version is unset.
    most_recent: Optional[bool] = None
    configuration_values: Optional[Mapping[str, Any]] = None
    pod_identity_associations: Optional[Sequence[Any]] = None
    preserve: Optional[bool] = None
    resolve_conflicts_on_create: Optional[str] = None
    resolve_conflicts_on_update: Optional[str] = None
    service_account_role_arn: Optional[pulumi.Input[str]] = None
    tags: Tags = field(default_factory=dict)


@dataclass
class ClusterArgs:
    vpc_config: Optional[VpcConfig] = None
    name: Optional[pulumi.Input[str]] = None
    role_arn: Optional[pulumi.Input[str]] = None
    version: Optional[pulumi.Input[str]] = None
    zonal_shift_config: Optional[ZonalShiftConfig] = None
    support_type: Optional[Union[SupportType, str]] = None
    network_config: Optional[NetworkConfig] = None
    encryption_key_arn: Optional[pulumi.Input[str]] = None
    addons: Mapping[str, AddonConfiguration] = field(default_factory=dict)
    auto_mode: AutoModeConfig = field(default_factory=AutoModeConfig)
    create_oidc_provider: bool = False
    tags: Tags = field(default_factory=dict)


@dataclass
class KarpenterArgs:
    cluster_name: pulumi.Input[str]
    version: Optional[pulumi.Input[str]] = None
    queue: Optional[QueueArgs] = None
    controller_role_arn: Optional[pulumi.Input[str]] = None
    controller_role_args: Optional[RoleArgs] = None
    node_role_arn: Optional[pulumi.Input[str]] = None
    node_role_args: Optional[RoleArgs] = None
    service_account: str = "karpenter"
    create_access_entry: bool = True
    kubeconfig: Optional[pulumi.Input[str]] = None
    helm_values: Optional[Mapping[str, Any]] = None
    tags: Tags = field(default_factory=dict)


@dataclass
class IrsaRoleArgs:
    """An IAM role assumable by Kubernetes service accounts through the cluster's OIDC provider."""

    cluster_name: pulumi.Input[str]
    service_accounts: Sequence[NamespacedServiceAccount] = field(default_factory=list)
    name: Optional[pulumi.Input[str]] = None
    name_prefix: Optional[pulumi.Input[str]] = None
    description: Optional[pulumi.Input[str]] = None
    path: Optional[pulumi.Input[str]] = None
    max_session_duration: Optional[pulumi.Input[int]] = None
    permissions_boundary: Optional[pulumi.Input[str]] = None
    force_detach_policies: Optional[bool] = None
    managed_policy_arns: Sequence[pulumi.Input[str]] = field(default_factory=list)
    inline_policies: Mapping[str, pulumi.Input[str]] = field(default_factory=dict)
    tags: Tags = field(default_factory=dict)
