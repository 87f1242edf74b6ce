import logging

import pulumi
import pulumi_kubernetes as k8s

from aws_k8s.cluster import create_cluster
from aws_k8s.config import cluster_args, karpenter_args, load_stack_config
from aws_k8s.karpenter import create_karpenter
from aws_k8s.kubeconfig import create_kube_config
from aws_k8s.settings import get_settings

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

stack = pulumi.get_stack()
config = load_stack_config()

cluster = create_cluster(
    name=f"{stack}-cluster",
    args=cluster_args(config.cluster),
)

pulumi.export("cluster_name", cluster.name)
pulumi.export("cluster_arn", cluster.eks_cluster.arn)
pulumi.export("cluster_endpoint", cluster.eks_cluster.endpoint)
pulumi.export("cluster_security_group_id", cluster.cluster_security_group_id)
pulumi.export("cluster_role_arn", cluster.cluster_role_arn)
pulumi.export("encryption_key_arn", cluster.encryption_key_arn)
pulumi.export("installed_addons", cluster.installed_addons)
if cluster.oidc_provider is not None:
    pulumi.export("oidc_provider_arn", cluster.oidc_provider.arn)

kube_config = create_kube_config(
    f"{stack}-kubeconfig",
    cluster_name=cluster.name,
    opts=pulumi.ResourceOptions(depends_on=[cluster.component.resource]),
)
pulumi.export("kubeconfig", kube_config.kubeconfig)


# =============================================================================
# Karpenter
# =============================================================================

if config.karpenter is not None:
    karpenter = create_karpenter(
        name=f"{stack}-karpenter",
        args=karpenter_args(config.karpenter, cluster.name, config.tags),
        opts=pulumi.ResourceOptions(depends_on=[cluster.component.resource]),
    )

    pulumi.export("karpenter_queue_arn", karpenter.queue_arn)
    pulumi.export("karpenter_node_role_name", karpenter.node_role_name)
    pulumi.export("karpenter_controller_role_name", karpenter.controller_role_name)

    k8s_provider = k8s.Provider(
        f"{stack}-k8s",
        kubeconfig=kube_config.kubeconfig,
    )

    node_class = k8s.apiextensions.CustomResource(
        f"{stack}-node-class",
        api_version="karpenter.k8s.aws/v1",
        kind="EC2NodeClass",
        metadata=k8s.meta.v1.ObjectMetaArgs(name="general-purpose"),
        spec={
            "amiSelectorTerms": [{"alias": "bottlerocket@latest"}],
            "role": karpenter.node_role_name,
            "subnetSelectorTerms": [{"id": subnet_id} for subnet_id in config.cluster.subnet_ids],
            "securityGroupSelectorTerms": [{"id": cluster.cluster_security_group_id}],
        },
        opts=pulumi.ResourceOptions(provider=k8s_provider, depends_on=[karpenter.release]),
    )

    k8s.apiextensions.CustomResource(
        f"{stack}-node-pool",
        api_version="karpenter.sh/v1",
        kind="NodePool",
        metadata=k8s.meta.v1.ObjectMetaArgs(name="general-purpose"),
        spec={
            "template": {
                "spec": {
                    "nodeClassRef": {
                        "group": "karpenter.k8s.aws",
                        "kind": "EC2NodeClass",
                        "name": "general-purpose",
                    },
                    "requirements": [
                        {"key": "karpenter.k8s.aws/instance-category", "operator": "In", "values": ["c", "m", "r"]},
                        {
                            "key": "karpenter.k8s.aws/instance-cpu",
                            "operator": "In",
                            "values": ["2", "4", "8", "16", "32"],
                        },
                        {"key": "karpenter.k8s.aws/instance-hypervisor", "operator": "In", "values": ["nitro"]},
                        {"key": "karpenter.k8s.aws/instance-generation", "operator": "Gt", "values": ["5"]},
                    ],
                }
            },
            "limits": {"cpu": 40},
            "disruption": {"consolidationPolicy": "WhenEmpty", "consolidateAfter": "30s"},
        },
        opts=pulumi.ResourceOptions(provider=k8s_provider, depends_on=[karpenter.release, node_class]),
    )
