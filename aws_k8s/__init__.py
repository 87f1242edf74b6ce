"""Pulumi components for EKS clusters running Karpenter."""

from aws_k8s.args import (
    AddonConfiguration,
    AutoModeConfig,
    ClusterArgs,
    IrsaRoleArgs,
    KarpenterArgs,
    NetworkConfig,
    QueueArgs,
    RoleArgs,
    VpcConfig,
    ZonalShiftConfig,
)
from aws_k8s.cluster import Cluster, create_cluster
from aws_k8s.errors import AddonVersionLookupError, AwsK8sError, ClusterLookupError, ConfigurationError
from aws_k8s.irsa import IrsaRole, create_irsa_role
from aws_k8s.karpenter import Karpenter, create_karpenter
from aws_k8s.kubeconfig import KubeConfig, create_kube_config, get_kubeconfig
from aws_k8s.policy.trust import NamespacedServiceAccount

__all__ = [
    "AddonConfiguration",
    "AddonVersionLookupError",
    "AutoModeConfig",
    "AwsK8sError",
    "Cluster",
    "ClusterArgs",
    "ClusterLookupError",
    "ConfigurationError",
    "IrsaRole",
    "IrsaRoleArgs",
    "Karpenter",
    "KarpenterArgs",
    "KubeConfig",
    "NamespacedServiceAccount",
    "NetworkConfig",
    "QueueArgs",
    "RoleArgs",
    "VpcConfig",
    "ZonalShiftConfig",
    "create_cluster",
    "create_irsa_role",
    "create_karpenter",
    "create_kube_config",
    "get_kubeconfig",
]
