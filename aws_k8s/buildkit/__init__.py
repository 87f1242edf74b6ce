from aws_k8s.buildkit.builder import BuildkitBuilder, BuildkitBuilderArgs, PvConfig, create_buildkit_builder
from aws_k8s.buildkit.certs import BuildkitCerts, BuildkitCertsArgs, create_buildkit_certs

__all__ = [
    "BuildkitBuilder",
    "BuildkitBuilderArgs",
    "BuildkitCerts",
    "BuildkitCertsArgs",
    "PvConfig",
    "create_buildkit_builder",
    "create_buildkit_certs",
]
