"""Karpenter Helm release."""

import logging
from typing import Any, Mapping, Optional

import pulumi
import pulumi_kubernetes as k8s

from aws_k8s.settings import get_settings

logger = logging.getLogger(__name__)

CONTROLLER_RESOURCES = {
    "requests": {"cpu": "1", "memory": "1Gi"},
    "limits": {"cpu": "1", "memory": "1Gi"},
}


def karpenter_helm_values(
    cluster_name: str,
    cluster_endpoint: str,
    interruption_queue: str,
    region: str,
    service_account: str,
    overrides: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """Chart values with caller overrides layered on top.

    ``settings`` and ``controller`` are merged key by key so a caller can add
    to them without dropping the cluster wiring; every other key replaces the
    default outright.
    """
    overrides = dict(overrides or {})
    settings_overrides = overrides.pop("settings", None) or {}
    controller_overrides = overrides.pop("controller", None) or {}

    return {
        "dnsPolicy": "Default",
        "serviceAccount": {"name": service_account},
        **overrides,
        "settings": {
            "clusterName": cluster_name,
            "clusterEndpoint": cluster_endpoint,
            "interruptionQueue": interruption_queue,
            **settings_overrides,
        },
        "controller": {
            "env": [{"name": "AWS_REGION", "value": region}],
            "resources": CONTROLLER_RESOURCES,
            **controller_overrides,
        },
    }


def create_karpenter_release(
    name: str,
    version: pulumi.Input[str],
    values: pulumi.Input[dict],
    provider: k8s.Provider,
    opts: pulumi.ResourceOptions,
) -> k8s.helm.v3.Release:
    settings = get_settings()
    logger.debug("Installing Karpenter chart %s into %s", settings.karpenter_chart, settings.karpenter_namespace)

    return k8s.helm.v3.Release(
        name,
        chart=settings.karpenter_chart,
        version=version,
        namespace=settings.karpenter_namespace,
        atomic=True,
        values=values,
        opts=pulumi.ResourceOptions.merge(opts, pulumi.ResourceOptions(provider=provider)),
    )
