"""Karpenter component.

Creates the interruption queue and its EventBridge rules, the node and
controller IAM roles, the controller's pod identity association and the
Helm release that installs Karpenter into the cluster.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

import pulumi
import pulumi_aws as aws
import pulumi_kubernetes as k8s

from aws_k8s.args import KarpenterArgs
from aws_k8s.component import Component, open_component
from aws_k8s.descriptors import (
    QueueDescriptor,
    karpenter_controller_role_descriptor,
    karpenter_node_role_descriptor,
    merge_tags,
    queue_descriptor,
)
from aws_k8s.errors import ConfigurationError
from aws_k8s.helm import create_karpenter_release, karpenter_helm_values
from aws_k8s.iam import create_role, resolve_role_args
from aws_k8s.kubeconfig import get_kubeconfig
from aws_k8s.lookups import (
    get_account_id,
    get_cluster,
    get_cluster_ip_family,
    get_dns_suffix,
    get_partition,
    get_region,
    get_role_name,
    zip_outputs,
)
from aws_k8s.policy.karpenter import (
    INTERRUPTION_EVENTS,
    INTERRUPTION_QUEUE_TARGET_ID,
    PolicyScope,
    controller_policy_document,
    queue_policy_document,
)
from aws_k8s.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class Karpenter:
    component: Component
    queue: aws.sqs.Queue
    queue_arn: pulumi.Output[str]
    node_role_arn: pulumi.Output[str]
    node_role_name: pulumi.Output[str]
    controller_role_arn: pulumi.Output[str]
    controller_role_name: pulumi.Output[str]
    pod_identity_association: aws.eks.PodIdentityAssociation
    release: k8s.helm.v3.Release
    event_rules: dict[str, aws.cloudwatch.EventRule] = field(default_factory=dict)


def _create_queue(name: str, descriptor: QueueDescriptor, component: Component) -> aws.sqs.Queue:
    return component.add(
        aws.sqs.Queue(
            name,
            name=descriptor.name,
            sqs_managed_sse_enabled=descriptor.sqs_managed_sse_enabled,
            kms_master_key_id=descriptor.kms_master_key_id,
            kms_data_key_reuse_period_seconds=descriptor.kms_data_key_reuse_period_seconds,
            tags=dict(descriptor.tags),
            opts=component.opts(),
        )
    )


def _create_queue_policy(name: str, queue: aws.sqs.Queue, component: Component) -> aws.sqs.QueuePolicy:
    policy = pulumi.Output.all(queue.arn, get_dns_suffix(component.resource)).apply(
        lambda a: queue_policy_document(a[0], a[1]).to_json()
    )
    return component.add(
        aws.sqs.QueuePolicy(
            name,
            queue_url=queue.url,
            policy=policy,
            opts=component.opts(),
        )
    )


def _node_role_arn(name: str, args: KarpenterArgs, component: Component) -> pulumi.Output[str]:
    if args.node_role_arn is not None:
        logger.debug("Using existing Karpenter node role for %s", name)
        return pulumi.Output.from_input(args.node_role_arn)

    parent = component.resource
    descriptor = pulumi.Output.all(
        cluster_name=args.cluster_name,
        partition=get_partition(parent),
        dns_suffix=get_dns_suffix(parent),
        account_id=get_account_id(parent),
        ip_family=get_cluster_ip_family(args.cluster_name, parent),
        role_args=resolve_role_args(args.node_role_args),
        tags=dict(args.tags),
    ).apply(lambda a: karpenter_node_role_descriptor(**a))

    logger.debug("Creating Karpenter node role for %s", name)
    return create_role(f"{name}-node-role", descriptor, component).arn


def _controller_role_arn(
    name: str,
    args: KarpenterArgs,
    component: Component,
    queue_arn: pulumi.Output[str],
    node_role_arn: pulumi.Output[str],
) -> pulumi.Output[str]:
    if args.controller_role_arn is not None:
        logger.debug("Using existing Karpenter controller role for %s", name)
        return pulumi.Output.from_input(args.controller_role_arn)

    parent = component.resource
    scope = pulumi.Output.all(
        partition=get_partition(parent),
        region=get_region(parent),
        dns_suffix=get_dns_suffix(parent),
        cluster_name=args.cluster_name,
        queue_arn=queue_arn,
        node_role_arn=node_role_arn,
    ).apply(lambda a: PolicyScope(**a))

    role_tags = args.controller_role_args.tags if args.controller_role_args else None
    controller_policy = component.add(
        aws.iam.Policy(
            f"{name}-controller-policy",
            description="Policy for the Karpenter controller",
            policy=scope.apply(lambda s: controller_policy_document(s).to_json()),
            tags=merge_tags(args.tags, role_tags),
            opts=component.opts(),
        )
    )

    descriptor = pulumi.Output.all(
        dns_suffix=get_dns_suffix(parent),
        controller_policy_arn=controller_policy.arn,
        role_args=resolve_role_args(args.controller_role_args),
        tags=dict(args.tags),
    ).apply(lambda a: karpenter_controller_role_descriptor(**a))

    logger.debug("Creating Karpenter controller role for %s", name)
    return create_role(f"{name}-controller-role", descriptor, component).arn


def _create_event_rules(
    name: str,
    queue_arn: pulumi.Output[str],
    component: Component,
) -> dict[str, aws.cloudwatch.EventRule]:
    rules = {}
    for key, event in INTERRUPTION_EVENTS.items():
        rule = component.add(
            aws.cloudwatch.EventRule(
                f"{name}-{key}",
                description=event["description"],
                event_pattern=json.dumps(event["event_pattern"]),
                opts=component.opts(),
            )
        )
        component.add(
            aws.cloudwatch.EventTarget(
                f"{name}-{key}",
                rule=rule.name,
                arn=queue_arn,
                target_id=INTERRUPTION_QUEUE_TARGET_ID,
                opts=component.opts(depends_on=[rule]),
            )
        )
        rules[key] = rule
    return rules


def create_karpenter(
    name: str,
    args: KarpenterArgs,
    opts: Optional[pulumi.ResourceOptions] = None,
) -> Karpenter:
    """Install Karpenter into an existing EKS cluster along with its AWS dependencies."""
    if not args.version:
        raise ConfigurationError("version", "a Karpenter chart version is required")
    queue_desc = queue_descriptor(args.queue, args.tags)

    component = open_component("aws-k8s:index:Karpenter", name, opts)
    parent = component.resource
    settings = get_settings()

    queue = _create_queue(name, queue_desc, component)
    queue_policy = _create_queue_policy(name, queue, component)
    # Consumers only see the queue once its policy is in place.
    queue_arn = zip_outputs(queue_policy.id, queue.arn).apply(lambda a: a[1])

    node_role_arn = _node_role_arn(name, args, component)
    if args.create_access_entry:
        access_entry = component.add(
            aws.eks.AccessEntry(
                name,
                cluster_name=args.cluster_name,
                principal_arn=node_role_arn,
                type="EC2_LINUX",
                tags=dict(args.tags),
                opts=component.opts(),
            )
        )
        registered_node_role = zip_outputs(access_entry.id, node_role_arn).apply(lambda a: a[1])
        node_role_name = get_role_name(registered_node_role)
    else:
        node_role_name = get_role_name(node_role_arn)

    controller_role_arn = _controller_role_arn(name, args, component, queue_arn, node_role_arn)
    controller_role_name = get_role_name(controller_role_arn)

    pod_identity_association = component.add(
        aws.eks.PodIdentityAssociation(
            name,
            cluster_name=args.cluster_name,
            namespace=settings.karpenter_namespace,
            service_account=args.service_account,
            role_arn=controller_role_arn,
            opts=component.opts(),
        )
    )

    event_rules = _create_event_rules(name, queue_arn, component)

    kubeconfig = args.kubeconfig if args.kubeconfig is not None else get_kubeconfig(args.cluster_name, parent)
    k8s_provider = component.add(
        k8s.Provider(
            f"{name}-k8s",
            kubeconfig=kubeconfig,
            opts=component.opts(),
        )
    )

    cluster = get_cluster(args.cluster_name, parent)
    values = pulumi.Output.all(
        cluster_name=args.cluster_name,
        cluster_endpoint=cluster.endpoint,
        interruption_queue=queue.name,
        region=get_region(parent),
        overrides=dict(args.helm_values or {}),
    ).apply(lambda a: karpenter_helm_values(service_account=args.service_account, **a))

    release = component.add(
        create_karpenter_release(
            f"{name}-karpenter",
            version=args.version,
            values=values,
            provider=k8s_provider,
            opts=component.opts(depends_on=[pod_identity_association]),
        )
    )

    component.finish(
        {
            "queue_arn": queue_arn,
            "controller_role_name": controller_role_name,
            "node_role_name": node_role_name,
        }
    )

    return Karpenter(
        component=component,
        queue=queue,
        queue_arn=queue_arn,
        node_role_arn=node_role_arn,
        node_role_name=node_role_name,
        controller_role_arn=controller_role_arn,
        controller_role_name=controller_role_name,
        pod_identity_association=pod_identity_association,
        release=release,
        event_rules=event_rules,
    )
