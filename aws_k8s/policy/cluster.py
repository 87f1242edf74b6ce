from typing import Sequence

from aws_k8s.policy.document import BOOL, Condition, PolicyDocument, Statement

CLUSTER_ROLE_POLICIES = (
    "AmazonEKSClusterPolicy",
    "AmazonEKSComputePolicy",
    "AmazonEKSBlockStoragePolicy",
    "AmazonEKSLoadBalancingPolicy",
    "AmazonEKSNetworkingPolicy",
)

AUTO_MODE_NODE_POLICIES = (
    "AmazonEKSWorkerNodeMinimalPolicy",
    "AmazonEC2ContainerRegistryPullOnly",
)

KARPENTER_NODE_POLICIES = (
    "AmazonEKS_CNI_Policy",
    "AmazonEKSWorkerNodePolicy",
    "AmazonEC2ContainerRegistryReadOnly",
)

CLUSTER_ENCRYPTION_POLICY_NAME = "EKSClusterEncryptionPolicy"
CLUSTER_ADMIN_ACCESS_POLICY = "AmazonEKSClusterAdminPolicy"


def managed_policy_arn(partition: str, policy_name: str) -> str:
    return f"arn:{partition}:iam::aws:policy/{policy_name}"


def managed_policy_arns(partition: str, policy_names: Sequence[str]) -> list[str]:
    return [managed_policy_arn(partition, name) for name in policy_names]


def cni_ipv6_policy_arn(partition: str, account_id: str) -> str:
    # Not AWS managed: EKS creates it in the account with the first IPv6 cluster.
    return f"arn:{partition}:iam::{account_id}:policy/AmazonEKS_CNI_IPv6_Policy"


def cluster_admin_access_policy_arn(partition: str) -> str:
    return f"arn:{partition}:eks::aws:cluster-access-policy/{CLUSTER_ADMIN_ACCESS_POLICY}"


def cluster_encryption_policy(key_arn: str) -> PolicyDocument:
    """Inline policy letting the cluster role encrypt secrets with ``key_arn``."""
    return PolicyDocument(
        statements=(
            Statement(
                effect="Allow",
                actions=(
                    "kms:Encrypt",
                    "kms:Decrypt",
                    "kms:ReEncrypt*",
                    "kms:GenerateDataKey*",
                    "kms:DescribeKey",
                ),
                resources=(key_arn,),
            ),
            Statement(
                effect="Allow",
                actions=("kms:CreateGrant", "kms:ListGrants", "kms:RevokeGrant"),
                resources=("*",),
                conditions=(Condition.of(BOOL, "kms:GrantIsForAWSResource", "true"),),
            ),
        )
    )
