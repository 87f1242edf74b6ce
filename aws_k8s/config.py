"""Stack configuration loaded from Pulumi config.

Values arrive as strings (lists comma-separated, structured values as JSON)
and are validated through the pydantic models in ``aws_k8s.models`` before
being turned into component arguments.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

import pulumi
from pydantic import ValidationError

from aws_k8s.args import (
    AddonConfiguration,
    AutoModeConfig,
    ClusterArgs,
    KarpenterArgs,
    NetworkConfig,
    QueueArgs,
    RoleArgs,
    VpcConfig,
    ZonalShiftConfig,
)
from aws_k8s.errors import ConfigurationError
from aws_k8s.models import (
    AutoModeConfigInput,
    ClusterConfigInput,
    KarpenterConfigInput,
    RoleConfigInput,
)


@dataclass
class StackConfig:
    """Validated configuration for one stack."""

    cluster: ClusterConfigInput
    karpenter: Optional[KarpenterConfigInput] = None
    tags: dict[str, str] = field(default_factory=dict)


def _parse_list(value: Optional[str], default: Optional[list[str]] = None) -> list[str]:
    """Parse a comma-separated string into a list."""
    if value is None:
        return default or []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse a string boolean value."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def _parse_json(key: str, value: Optional[str], default: dict | list | None = None) -> dict | list | None:
    """Parse a JSON string."""
    if value is None:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigurationError(key, f"not valid JSON: {e}") from e


def _validation_error(prefix: str, error: ValidationError) -> ConfigurationError:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return ConfigurationError(f"{prefix}.{location}" if location else prefix, first["msg"])


def _load_cluster(config: Any, tags: dict[str, str]) -> ClusterConfigInput:
    network = None
    if config.get("serviceCidr"):
        network = {
            "ip_family": config.get("ipFamily") or "ipv4",
            "service_cidr": config.get("serviceCidr"),
        }

    auto_mode = AutoModeConfigInput(enabled=_parse_bool(config.get("autoModeEnabled"), True))
    raw = {
        "name": config.get("clusterName"),
        "subnet_ids": _parse_list(config.get("subnetIds")),
        "security_group_ids": _parse_list(config.get("securityGroupIds")),
        "api_server_endpoints": _parse_list(config.get("apiServerEndpoints"), ["public"]),
        "version": config.get("kubernetesVersion"),
        "network": network,
        "zonal_shift_enabled": _parse_bool(config.get("zonalShiftEnabled"), False),
        "support_type": config.get("supportType"),
        "auto_mode": {
            "enabled": auto_mode.enabled,
            "node_pools": _parse_list(config.get("autoModeNodePools"), auto_mode.node_pools),
            "node_role_arn": config.get("autoModeNodeRoleArn"),
        },
        "addons": _parse_json("addons", config.get("addons"), {}),
        "create_oidc_provider": _parse_bool(config.get("createOidcProvider"), False),
        "tags": tags,
    }

    try:
        return ClusterConfigInput(**raw)
    except ValidationError as e:
        raise _validation_error("cluster", e) from e


def _load_karpenter(config: Any) -> Optional[KarpenterConfigInput]:
    if not _parse_bool(config.get("karpenterEnabled"), True):
        return None

    raw = {
        "version": config.get("karpenterVersion"),
        "queue": _parse_json("karpenterQueue", config.get("karpenterQueue"), {}),
        "controller_role_arn": config.get("karpenterControllerRoleArn"),
        "controller_role": _parse_json("karpenterControllerRole", config.get("karpenterControllerRole"), {}),
        "node_role_arn": config.get("karpenterNodeRoleArn"),
        "node_role": _parse_json("karpenterNodeRole", config.get("karpenterNodeRole"), {}),
        "service_account": config.get("karpenterServiceAccount") or "karpenter",
        "create_access_entry": _parse_bool(config.get("karpenterCreateAccessEntry"), True),
        "helm_values": _parse_json("karpenterHelmValues", config.get("karpenterHelmValues"), {}),
    }

    try:
        return KarpenterConfigInput(**raw)
    except ValidationError as e:
        raise _validation_error("karpenter", e) from e


def load_stack_config(config: Optional[Any] = None) -> StackConfig:
    """Load and validate the stack configuration.

    ``config`` defaults to the project's ``pulumi.Config``; anything with a
    compatible ``get`` method works.
    """
    config = config if config is not None else pulumi.Config()
    tags = dict(_parse_json("tags", config.get("tags"), {}) or {})

    return StackConfig(
        cluster=_load_cluster(config, tags),
        karpenter=_load_karpenter(config),
        tags=tags,
    )


def _role_args(role: RoleConfigInput) -> RoleArgs:
    return RoleArgs(
        name=role.name,
        description=role.description,
        path=role.path,
        max_session_duration=role.max_session_duration,
        permissions_boundary=role.permissions_boundary,
        additional_managed_policy_arns=list(role.additional_managed_policy_arns),
        tags=dict(role.tags),
    )


def cluster_args(cluster: ClusterConfigInput) -> ClusterArgs:
    auto_mode = cluster.auto_mode
    return ClusterArgs(
        name=cluster.name,
        version=cluster.version,
        vpc_config=VpcConfig(
            subnet_ids=list(cluster.subnet_ids),
            cluster_security_group_ids=list(cluster.security_group_ids) or None,
            api_server_endpoints=[e.value for e in cluster.api_server_endpoints],
        ),
        network_config=(
            NetworkConfig(ip_family=cluster.network.ip_family.value, service_cidr=cluster.network.service_cidr)
            if cluster.network
            else None
        ),
        zonal_shift_config=ZonalShiftConfig(enabled=cluster.zonal_shift_enabled),
        support_type=cluster.support_type.value if cluster.support_type else None,
        auto_mode=AutoModeConfig(
            enabled=auto_mode.enabled,
            node_pools=list(auto_mode.node_pools),
            node_role_arn=auto_mode.node_role_arn,
        ),
        addons={
            name: AddonConfiguration(
                addon_version=addon.version,
                most_recent=addon.most_recent,
                configuration_values=addon.configuration or None,
                resolve_conflicts_on_create=addon.resolve_conflicts_on_create,
                resolve_conflicts_on_update=addon.resolve_conflicts_on_update,
                tags=dict(addon.tags),
            )
            for name, addon in cluster.addons.items()
        },
        create_oidc_provider=cluster.create_oidc_provider,
        tags=dict(cluster.tags),
    )


def karpenter_args(
    karpenter: KarpenterConfigInput,
    cluster_name: pulumi.Input[str],
    tags: Optional[dict[str, str]] = None,
) -> KarpenterArgs:
    queue = karpenter.queue
    return KarpenterArgs(
        cluster_name=cluster_name,
        version=karpenter.version,
        queue=QueueArgs(
            name=queue.name,
            managed_sse_enabled=queue.managed_sse_enabled,
            kms_master_key_id=queue.kms_master_key_id,
            kms_data_key_reuse_period_seconds=queue.kms_data_key_reuse_period_seconds,
            tags=dict(queue.tags),
        ),
        controller_role_arn=karpenter.controller_role_arn,
        controller_role_args=_role_args(karpenter.controller_role),
        node_role_arn=karpenter.node_role_arn,
        node_role_args=_role_args(karpenter.node_role),
        service_account=karpenter.service_account,
        create_access_entry=karpenter.create_access_entry,
        helm_values=dict(karpenter.helm_values) or None,
        tags=dict(tags or {}),
    )
