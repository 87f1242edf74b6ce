"""Kubeconfig derived from an EKS cluster's identity."""

import json
from dataclasses import dataclass
from typing import Optional

import pulumi

from aws_k8s.component import Component, open_component
from aws_k8s.lookups import get_cluster, get_region

EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"


def render_kubeconfig(
    cluster_arn: str,
    endpoint: str,
    certificate_authority_data: str,
    region: str,
    cluster_name: str,
) -> str:
    """Single-cluster, single-context kubeconfig authenticating through ``aws eks get-token``."""
    return json.dumps(
        {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [
                {
                    "name": cluster_arn,
                    "cluster": {
                        "server": endpoint,
                        "certificate-authority-data": certificate_authority_data,
                    },
                }
            ],
            "contexts": [
                {
                    "name": cluster_arn,
                    "context": {"user": cluster_arn, "cluster": cluster_arn},
                }
            ],
            "current-context": cluster_arn,
            "users": [
                {
                    "name": cluster_arn,
                    "user": {
                        "exec": {
                            "apiVersion": EXEC_API_VERSION,
                            "command": "aws",
                            "args": [
                                "--region",
                                region,
                                "eks",
                                "get-token",
                                "--cluster-name",
                                cluster_name,
                                "--output",
                                "json",
                            ],
                        }
                    },
                }
            ],
        }
    )


def _ca_data(certificate_authorities: list) -> str:
    first = certificate_authorities[0]
    if isinstance(first, dict):
        return first["data"]
    return first.data


def get_kubeconfig(
    cluster_name: pulumi.Input[str],
    parent: Optional[pulumi.Resource] = None,
) -> pulumi.Output[str]:
    """Look up the cluster and render its kubeconfig; recomputed on every run."""
    cluster = get_cluster(cluster_name, parent)
    return pulumi.Output.all(
        cluster.arn,
        cluster.endpoint,
        cluster.certificate_authorities,
        get_region(parent),
        cluster_name,
    ).apply(
        lambda args: render_kubeconfig(
            cluster_arn=args[0],
            endpoint=args[1],
            certificate_authority_data=_ca_data(args[2]),
            region=args[3],
            cluster_name=args[4],
        )
    )


@dataclass
class KubeConfig:
    component: Component
    kubeconfig: pulumi.Output[str]


def create_kube_config(
    name: str,
    cluster_name: pulumi.Input[str],
    opts: Optional[pulumi.ResourceOptions] = None,
) -> KubeConfig:
    component = open_component("aws-k8s:index:KubeConfig", name, opts)
    kubeconfig = pulumi.Output.secret(get_kubeconfig(cluster_name, component.resource))
    component.finish({"kubeconfig": kubeconfig})
    return KubeConfig(component=component, kubeconfig=kubeconfig)
