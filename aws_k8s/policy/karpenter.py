"""Least-privilege IAM policies for the Karpenter controller and its interruption queue.

Every controller statement is declared as data in ``CONTROLLER_STATEMENTS``
and rendered against a ``PolicyScope``. Creation-time actions are scoped with
``aws:RequestTag`` conditions and mutation/deletion actions with
``aws:ResourceTag`` conditions, so the controller can only touch resources
tagged for its own cluster.
"""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

from aws_k8s.errors import ConfigurationError
from aws_k8s.policy.document import (
    FOR_ALL_VALUES_STRING_EQUALS,
    STRING_EQUALS,
    STRING_EQUALS_IF_EXISTS,
    STRING_LIKE,
    Condition,
    PolicyDocument,
    Principal,
    Statement,
    StatementTemplate,
)
from aws_k8s.policy.trust import service_principal

logger = logging.getLogger(__name__)

EC2 = "arn:{partition}:ec2:{region}"
INSTANCE_PROFILE = "arn:{partition}:iam::*:instance-profile/*"

OWNED_BY_CLUSTER = "kubernetes.io/cluster/{cluster_name}"

REQUEST_OWNED = Condition.of(STRING_EQUALS, "aws:RequestTag/" + OWNED_BY_CLUSTER, "owned")
RESOURCE_OWNED = Condition.of(STRING_EQUALS, "aws:ResourceTag/" + OWNED_BY_CLUSTER, "owned")
REQUEST_CLUSTER_NAME = Condition.of(STRING_EQUALS, "aws:RequestTag/eks:eks-cluster-name", "{cluster_name}")
REQUEST_NODEPOOL = Condition.of(STRING_LIKE, "aws:RequestTag/karpenter.sh/nodepool", "*")
RESOURCE_NODEPOOL = Condition.of(STRING_LIKE, "aws:ResourceTag/karpenter.sh/nodepool", "*")
REQUEST_REGION = Condition.of(STRING_EQUALS, "aws:RequestTag/topology.kubernetes.io/region", "{region}")
RESOURCE_REGION = Condition.of(STRING_EQUALS, "aws:ResourceTag/topology.kubernetes.io/region", "{region}")
REQUEST_NODECLASS = Condition.of(STRING_LIKE, "aws:RequestTag/karpenter.k8s.aws/ec2nodeclass", "*")
RESOURCE_NODECLASS = Condition.of(STRING_LIKE, "aws:ResourceTag/karpenter.k8s.aws/ec2nodeclass", "*")

TAGGABLE_EC2_RESOURCES = (
    EC2 + ":*:fleet/*",
    EC2 + ":*:instance/*",
    EC2 + ":*:volume/*",
    EC2 + ":*:network-interface/*",
    EC2 + ":*:launch-template/*",
    EC2 + ":*:spot-instances-request/*",
)

CONTROLLER_STATEMENTS: dict[str, StatementTemplate] = {
    "AllowScopedEC2InstanceAccessActions": StatementTemplate(
        actions=("ec2:RunInstances", "ec2:CreateFleet"),
        resources=(
            EC2 + "::image/*",
            EC2 + "::snapshot/*",
            EC2 + ":*:security-group/*",
            EC2 + ":*:subnet/*",
        ),
    ),
    "AllowScopedEC2LaunchTemplateAccessActions": StatementTemplate(
        actions=("ec2:RunInstances", "ec2:CreateFleet"),
        resources=(EC2 + ":*:launch-template/*",),
        conditions=(RESOURCE_OWNED, RESOURCE_NODEPOOL),
    ),
    "AllowScopedEC2InstanceActionsWithTags": StatementTemplate(
        actions=("ec2:RunInstances", "ec2:CreateFleet", "ec2:CreateLaunchTemplate"),
        resources=TAGGABLE_EC2_RESOURCES,
        conditions=(REQUEST_OWNED, REQUEST_CLUSTER_NAME, REQUEST_NODEPOOL),
    ),
    "AllowScopedResourceCreationTagging": StatementTemplate(
        actions=("ec2:CreateTags",),
        resources=TAGGABLE_EC2_RESOURCES,
        conditions=(
            REQUEST_OWNED,
            REQUEST_CLUSTER_NAME,
            Condition.of(
                STRING_EQUALS, "ec2:CreateAction", "RunInstances", "CreateFleet", "CreateLaunchTemplate"
            ),
            REQUEST_NODEPOOL,
        ),
    ),
    "AllowScopedResourceTagging": StatementTemplate(
        actions=("ec2:CreateTags",),
        resources=(EC2 + ":*:instance/*",),
        conditions=(
            RESOURCE_OWNED,
            RESOURCE_NODEPOOL,
            Condition.of(STRING_EQUALS_IF_EXISTS, "aws:RequestTag/eks:eks-cluster-name", "{cluster_name}"),
            Condition.of(
                FOR_ALL_VALUES_STRING_EQUALS,
                "aws:TagKeys",
                "eks:eks-cluster-name",
                "karpenter.sh/nodeclaim",
                "Name",
            ),
        ),
    ),
    "AllowScopedDeletion": StatementTemplate(
        actions=("ec2:TerminateInstances", "ec2:DeleteLaunchTemplate"),
        resources=(EC2 + ":*:instance/*", EC2 + ":*:launch-template/*"),
        conditions=(RESOURCE_OWNED, RESOURCE_NODEPOOL),
    ),
    "AllowRegionalReadActions": StatementTemplate(
        actions=(
            "ec2:DescribeAvailabilityZones",
            "ec2:DescribeImages",
            "ec2:DescribeInstances",
            "ec2:DescribeInstanceTypeOfferings",
            "ec2:DescribeInstanceTypes",
            "ec2:DescribeLaunchTemplates",
            "ec2:DescribeSecurityGroups",
            "ec2:DescribeSpotPriceHistory",
            "ec2:DescribeSubnets",
        ),
        resources=("*",),
        conditions=(Condition.of(STRING_EQUALS, "aws:RequestedRegion", "{region}"),),
    ),
    "AllowSSMReadActions": StatementTemplate(
        actions=("ssm:GetParameter",),
        resources=("arn:{partition}:ssm:{region}::parameter/aws/service/*",),
    ),
    "AllowPricingReadActions": StatementTemplate(
        actions=("pricing:GetProducts",),
        resources=("*",),
    ),
    "AllowInterruptionQueueActions": StatementTemplate(
        actions=("sqs:DeleteMessage", "sqs:GetQueueUrl", "sqs:ReceiveMessage"),
        resources=("{queue_arn}",),
    ),
    "AllowPassingInstanceRole": StatementTemplate(
        actions=("iam:PassRole",),
        resources=("{node_role_arn}",),
        conditions=(Condition.of(STRING_EQUALS, "iam:PassedToService", "ec2.{dns_suffix}"),),
    ),
    "AllowScopedInstanceProfileCreationActions": StatementTemplate(
        actions=("iam:CreateInstanceProfile",),
        resources=(INSTANCE_PROFILE,),
        conditions=(REQUEST_OWNED, REQUEST_CLUSTER_NAME, REQUEST_REGION, REQUEST_NODECLASS),
    ),
    "AllowScopedInstanceProfileTagActions": StatementTemplate(
        actions=("iam:TagInstanceProfile",),
        resources=(INSTANCE_PROFILE,),
        conditions=(
            RESOURCE_OWNED,
            RESOURCE_REGION,
            REQUEST_OWNED,
            REQUEST_CLUSTER_NAME,
            REQUEST_REGION,
            RESOURCE_NODECLASS,
            REQUEST_NODECLASS,
        ),
    ),
    "AllowScopedInstanceProfileActions": StatementTemplate(
        actions=(
            "iam:AddRoleToInstanceProfile",
            "iam:RemoveRoleFromInstanceProfile",
            "iam:DeleteInstanceProfile",
        ),
        resources=(INSTANCE_PROFILE,),
        conditions=(RESOURCE_OWNED, RESOURCE_REGION, RESOURCE_NODECLASS),
    ),
    "AllowInstanceProfileReadActions": StatementTemplate(
        actions=("iam:GetInstanceProfile",),
        resources=(INSTANCE_PROFILE,),
    ),
    "AllowAPIServerEndpointDiscovery": StatementTemplate(
        actions=("eks:DescribeCluster",),
        resources=("arn:{partition}:eks:{region}:*:cluster/{cluster_name}",),
    ),
}

# Statements that operate on resources Karpenter launches and therefore must
# be pinned to the owning cluster's tag.
CLUSTER_SCOPED_SIDS = frozenset(
    sid
    for sid, template in CONTROLLER_STATEMENTS.items()
    if any(OWNED_BY_CLUSTER in c.variable for c in template.conditions)
)


@dataclass(frozen=True)
class PolicyScope:
    """Values substituted into the controller statement templates."""

    partition: str
    region: str
    dns_suffix: str
    cluster_name: str
    queue_arn: str
    node_role_arn: str


def controller_statement(sid: str, scope: PolicyScope) -> Statement:
    return CONTROLLER_STATEMENTS[sid].render(sid, asdict(scope))


def controller_policy_document(scope: PolicyScope) -> PolicyDocument:
    return PolicyDocument(
        statements=tuple(controller_statement(sid, scope) for sid in CONTROLLER_STATEMENTS)
    )


def queue_policy_document(queue_arn: str, dns_suffix: str) -> PolicyDocument:
    """Policy for the interruption queue.

    EventBridge and SQS may send messages; anything over plain HTTP is denied
    regardless of other grants.
    """
    return PolicyDocument(
        statements=(
            Statement(
                sid="SqsWrite",
                effect="Allow",
                actions=("sqs:SendMessage",),
                resources=(queue_arn,),
                principals=(
                    Principal(
                        "Service",
                        (service_principal("events", dns_suffix), service_principal("sqs", dns_suffix)),
                    ),
                ),
            ),
            Statement(
                sid="DenyHTTP",
                effect="Deny",
                actions=("sqs:*",),
                resources=(queue_arn,),
                principals=(Principal("*", ("*",)),),
                conditions=(Condition.of(STRING_EQUALS, "aws:SecureTransport", "false"),),
            ),
        )
    )


class QueueEncryptionMode(str, Enum):
    MANAGED_SSE = "managed-sse"
    CUSTOMER_KMS = "customer-kms"


def resolve_queue_encryption(
    managed_sse_enabled: Optional[bool],
    kms_master_key_id: Optional[str],
    kms_data_key_reuse_period_seconds: Optional[int],
) -> QueueEncryptionMode:
    """Pick the interruption queue's encryption mode.

    Managed SSE and a customer KMS key are mutually exclusive. With neither
    requested the queue falls back to managed SSE.
    """
    uses_kms = bool(kms_master_key_id) or bool(kms_data_key_reuse_period_seconds)

    if managed_sse_enabled and uses_kms:
        raise ConfigurationError(
            "queue.managed_sse_enabled",
            "kms_master_key_id and kms_data_key_reuse_period_seconds must not be set "
            "if managed_sse_enabled is true",
        )

    if managed_sse_enabled:
        return QueueEncryptionMode.MANAGED_SSE
    if uses_kms:
        return QueueEncryptionMode.CUSTOMER_KMS

    # TODO: confirm with product owners that managed SSE is the intended default
    logger.debug("No queue encryption requested, defaulting to managed SSE")
    return QueueEncryptionMode.MANAGED_SSE


INTERRUPTION_QUEUE_TARGET_ID = "KarpenterInterruptionQueueTarget"

INTERRUPTION_EVENTS: dict[str, dict] = {
    "HealthEvent": {
        "description": "Karpenter interrupt - AWS health event",
        "event_pattern": {"source": ["aws.health"], "detail-type": ["AWS Health Event"]},
    },
    "SpotInterrupt": {
        "description": "Karpenter interrupt - EC2 spot instance interruption warning",
        "event_pattern": {
            "source": ["aws.ec2"],
            "detail-type": ["EC2 Spot Instance Interruption Warning"],
        },
    },
    "InstanceRebalance": {
        "description": "Karpenter interrupt - EC2 instance rebalance recommendation",
        "event_pattern": {
            "source": ["aws.ec2"],
            "detail-type": ["EC2 Instance Rebalance Recommendation"],
        },
    },
    "InstanceStateChange": {
        "description": "Karpenter interrupt - EC2 instance state-change notification",
        "event_pattern": {
            "source": ["aws.ec2"],
            "detail-type": ["EC2 Instance State-change Notification"],
        },
    },
}
