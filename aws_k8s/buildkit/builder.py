"""A rootless buildkitd reachable over mutual TLS inside the cluster."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

import pulumi
import pulumi_kubernetes as k8s

from aws_k8s.component import Component, open_component

BUILDKIT_IMAGE = "moby/buildkit:master-rootless"
SYSCTL_IMAGE = "public.ecr.aws/docker/library/busybox"
BUILDKIT_PORT = 1234
CERTS_MOUNT_PATH = "/certs"
STATE_MOUNT_PATH = "/home/user/.local/share/buildkit"
ROOTLESS_UID = 1000
# Bottlerocket ships with user namespaces disabled.
MAX_USER_NAMESPACES = 63359

PROBE_COMMAND = ["buildctl", "debug", "workers"]


@dataclass
class PvConfig:
    storage_class: str
    size: str


@dataclass
class BuildkitBuilderArgs:
    ca_cert_pem: pulumi.Input[str]
    cert_pem: pulumi.Input[str]
    private_key_pem: pulumi.Input[str]
    replicas: int = 1
    namespace: str = "default"
    pv_config: Optional[PvConfig] = None
    bottlerocket: bool = False
    node_selector: Optional[Mapping[str, pulumi.Input[str]]] = None
    tolerations: Optional[Sequence[Any]] = None
    resources: Optional[Any] = None


@dataclass
class BuildkitBuilder:
    component: Component
    cert_secret: k8s.core.v1.Secret
    stateful_set: k8s.apps.v1.StatefulSet
    service: k8s.core.v1.Service
    pvc: Optional[k8s.core.v1.PersistentVolumeClaim] = None
    sysctl_daemon_set: Optional[k8s.apps.v1.DaemonSet] = None


def buildkitd_args() -> list[str]:
    return [
        "--addr",
        f"unix:///run/user/{ROOTLESS_UID}/buildkit/buildkitd.sock",
        "--addr",
        f"tcp://0.0.0.0:{BUILDKIT_PORT}",
        "--tlscacert",
        f"{CERTS_MOUNT_PATH}/ca.pem",
        "--tlscert",
        f"{CERTS_MOUNT_PATH}/cert.pem",
        "--tlskey",
        f"{CERTS_MOUNT_PATH}/key.pem",
        "--oci-worker-no-process-sandbox",
    ]


def _probe() -> k8s.core.v1.ProbeArgs:
    return k8s.core.v1.ProbeArgs(
        exec_=k8s.core.v1.ExecActionArgs(command=PROBE_COMMAND),
        initial_delay_seconds=5,
        period_seconds=30,
    )


def _metadata(name: str, namespace: str, app: Optional[str] = None) -> k8s.meta.v1.ObjectMetaArgs:
    return k8s.meta.v1.ObjectMetaArgs(
        name=name,
        namespace=namespace,
        labels={"app": app} if app else None,
    )


def _sysctl_daemon_set(name: str, args: BuildkitBuilderArgs, component: Component) -> k8s.apps.v1.DaemonSet:
    app = f"{name}-sysctl-userns"
    return component.add(
        k8s.apps.v1.DaemonSet(
            app,
            metadata=_metadata(app, args.namespace, app),
            spec=k8s.apps.v1.DaemonSetSpecArgs(
                selector=k8s.meta.v1.LabelSelectorArgs(match_labels={"app": app}),
                template=k8s.core.v1.PodTemplateSpecArgs(
                    metadata=k8s.meta.v1.ObjectMetaArgs(labels={"app": app}),
                    spec=k8s.core.v1.PodSpecArgs(
                        node_selector=args.node_selector,
                        tolerations=args.tolerations,
                        containers=[
                            k8s.core.v1.ContainerArgs(
                                name="sysctl-userns",
                                image=SYSCTL_IMAGE,
                                command=[
                                    "sh",
                                    "-euxc",
                                    f"sysctl -w user.max_user_namespaces={MAX_USER_NAMESPACES} && sleep infinity",
                                ],
                                security_context=k8s.core.v1.SecurityContextArgs(privileged=True),
                            )
                        ],
                    ),
                ),
            ),
            opts=component.opts(),
        )
    )


def _state_volume(pvc: Optional[k8s.core.v1.PersistentVolumeClaim]) -> k8s.core.v1.VolumeArgs:
    if pvc is None:
        return k8s.core.v1.VolumeArgs(name="buildkitd", empty_dir=k8s.core.v1.EmptyDirVolumeSourceArgs())
    return k8s.core.v1.VolumeArgs(
        name="buildkitd",
        persistent_volume_claim=k8s.core.v1.PersistentVolumeClaimVolumeSourceArgs(
            claim_name=pvc.metadata.name,
        ),
    )


def create_buildkit_builder(
    name: str,
    args: BuildkitBuilderArgs,
    opts: Optional[pulumi.ResourceOptions] = None,
) -> BuildkitBuilder:
    """Run buildkitd as a StatefulSet behind a ClusterIP service on port 1234.

    Build state lives on a PVC when ``pv_config`` is set and on an emptyDir
    otherwise.
    """
    component = open_component("aws-k8s:buildkit:Builder", name, opts)
    app = f"{name}-buildkitd"

    cert_secret = component.add(
        k8s.core.v1.Secret(
            f"{name}-buildkit-certs",
            metadata=_metadata(f"{name}-buildkit-certs", args.namespace),
            string_data={
                "ca.pem": args.ca_cert_pem,
                "cert.pem": args.cert_pem,
                "key.pem": args.private_key_pem,
            },
            opts=component.opts(),
        )
    )

    pvc = None
    if args.pv_config is not None:
        pvc = component.add(
            k8s.core.v1.PersistentVolumeClaim(
                f"{name}-buildkitd-pvc",
                metadata=_metadata(f"{name}-buildkitd-pvc", args.namespace),
                spec=k8s.core.v1.PersistentVolumeClaimSpecArgs(
                    access_modes=["ReadWriteOnce"],
                    storage_class_name=args.pv_config.storage_class,
                    resources=k8s.core.v1.VolumeResourceRequirementsArgs(
                        requests={"storage": args.pv_config.size},
                    ),
                ),
                opts=component.opts(),
            )
        )

    sysctl_daemon_set = _sysctl_daemon_set(name, args, component) if args.bottlerocket else None

    stateful_set = component.add(
        k8s.apps.v1.StatefulSet(
            app,
            metadata=_metadata(app, args.namespace, app),
            spec=k8s.apps.v1.StatefulSetSpecArgs(
                replicas=args.replicas,
                service_name=app,
                selector=k8s.meta.v1.LabelSelectorArgs(match_labels={"app": app}),
                template=k8s.core.v1.PodTemplateSpecArgs(
                    metadata=k8s.meta.v1.ObjectMetaArgs(labels={"app": app}),
                    spec=k8s.core.v1.PodSpecArgs(
                        node_selector=args.node_selector,
                        tolerations=args.tolerations,
                        containers=[
                            k8s.core.v1.ContainerArgs(
                                name="buildkitd",
                                image=BUILDKIT_IMAGE,
                                args=buildkitd_args(),
                                readiness_probe=_probe(),
                                liveness_probe=_probe(),
                                resources=args.resources,
                                security_context=k8s.core.v1.SecurityContextArgs(
                                    seccomp_profile=k8s.core.v1.SeccompProfileArgs(type="Unconfined"),
                                    app_armor_profile=k8s.core.v1.AppArmorProfileArgs(type="Unconfined"),
                                    run_as_user=ROOTLESS_UID,
                                    run_as_group=ROOTLESS_UID,
                                ),
                                ports=[k8s.core.v1.ContainerPortArgs(container_port=BUILDKIT_PORT)],
                                volume_mounts=[
                                    k8s.core.v1.VolumeMountArgs(
                                        name="certs",
                                        read_only=True,
                                        mount_path=CERTS_MOUNT_PATH,
                                    ),
                                    k8s.core.v1.VolumeMountArgs(name="buildkitd", mount_path=STATE_MOUNT_PATH),
                                ],
                            )
                        ],
                        volumes=[
                            k8s.core.v1.VolumeArgs(
                                name="certs",
                                secret=k8s.core.v1.SecretVolumeSourceArgs(secret_name=cert_secret.metadata.name),
                            ),
                            _state_volume(pvc),
                        ],
                    ),
                ),
            ),
            opts=component.opts(depends_on=[sysctl_daemon_set] if sysctl_daemon_set else []),
        )
    )

    service = component.add(
        k8s.core.v1.Service(
            f"{name}-service",
            metadata=_metadata(f"{name}-service", args.namespace, app),
            spec=k8s.core.v1.ServiceSpecArgs(
                ports=[k8s.core.v1.ServicePortArgs(port=BUILDKIT_PORT, protocol="TCP")],
                selector={"app": app},
            ),
            opts=component.opts(),
        )
    )

    component.finish(
        {
            "stateful_set": stateful_set,
            "service": service,
            "cert_secret": cert_secret,
        }
    )
    return BuildkitBuilder(
        component=component,
        cert_secret=cert_secret,
        stateful_set=stateful_set,
        service=service,
        pvc=pvc,
        sysctl_daemon_set=sysctl_daemon_set,
    )
