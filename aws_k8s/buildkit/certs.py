"""TLS material for a remote buildkitd: a private CA plus server and client certificates."""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import pulumi
import pulumi_tls as tls

from aws_k8s.component import Component, open_component
from aws_k8s.models import KeyAlgorithm, parse_enum

CA_RSA_BITS = 3072
CA_VALIDITY_HOURS = 10 * 365 * 24
CA_EARLY_RENEWAL_HOURS = 90 * 24
# Stays under the 825 day limit Apple platforms enforce on every certificate.
LEAF_VALIDITY_HOURS = 800 * 24

DEFAULT_CA_SUBJECT = {
    "common_name": "buildkit-ca",
    "organization": "Buildkit development CA",
}
LEAF_ORGANIZATION = "Buildkit development certificate"

SERVER_USES = ["key_encipherment", "digital_signature", "server_auth"]
CLIENT_USES = ["key_encipherment", "digital_signature", "client_auth"]


@dataclass
class BuildkitCertsArgs:
    ca_subject: Optional[dict] = None
    key_algorithm: Union[KeyAlgorithm, str] = KeyAlgorithm.RSA
    server_ip_addresses: Sequence[pulumi.Input[str]] = field(default_factory=list)
    server_dns_names: Sequence[pulumi.Input[str]] = field(default_factory=list)


@dataclass
class BuildkitCerts:
    component: Component
    ca_cert_public_key_pem: pulumi.Output[str]
    ca_cert_pem: pulumi.Output[str]
    server_cert_pem: pulumi.Output[str]
    server_private_key_pem: pulumi.Output[str]
    client_cert_pem: pulumi.Output[str]
    client_private_key_pem: pulumi.Output[str]


def leaf_key_args(key_algorithm: Union[KeyAlgorithm, str]) -> dict:
    """Private key arguments for the server and client certificates."""
    algorithm = parse_enum(KeyAlgorithm, key_algorithm, "key_algorithm")
    if algorithm == KeyAlgorithm.ECDSA:
        return {"algorithm": algorithm.value, "ecdsa_curve": "P256"}
    return {"algorithm": algorithm.value, "rsa_bits": 2048}


def _leaf_cert(
    name: str,
    key_args: dict,
    ca: tls.SelfSignedCert,
    allowed_uses: list[str],
    component: Component,
    dns_names: Optional[Sequence[pulumi.Input[str]]] = None,
    ip_addresses: Optional[Sequence[pulumi.Input[str]]] = None,
) -> tuple[tls.PrivateKey, tls.LocallySignedCert]:
    key = component.add(tls.PrivateKey(f"{name}-key", **key_args, opts=component.opts()))
    request = component.add(
        tls.CertRequest(
            f"{name}-cert-request",
            private_key_pem=key.private_key_pem,
            subject=tls.CertRequestSubjectArgs(organization=LEAF_ORGANIZATION),
            dns_names=list(dns_names) if dns_names else None,
            ip_addresses=list(ip_addresses) if ip_addresses else None,
            opts=component.opts(),
        )
    )
    cert = component.add(
        tls.LocallySignedCert(
            f"{name}-cert",
            ca_private_key_pem=ca.private_key_pem,
            ca_cert_pem=ca.cert_pem,
            cert_request_pem=request.cert_request_pem,
            allowed_uses=allowed_uses,
            validity_period_hours=LEAF_VALIDITY_HOURS,
            opts=component.opts(),
        )
    )
    return key, cert


def create_buildkit_certs(
    name: str,
    args: Optional[BuildkitCertsArgs] = None,
    opts: Optional[pulumi.ResourceOptions] = None,
) -> BuildkitCerts:
    args = args or BuildkitCertsArgs()
    key_args = leaf_key_args(args.key_algorithm)

    component = open_component("aws-k8s:buildkit:Certs", name, opts)

    ca_key = component.add(
        tls.PrivateKey(
            f"{name}-ca-key",
            algorithm=KeyAlgorithm.RSA.value,
            rsa_bits=CA_RSA_BITS,
            opts=component.opts(),
        )
    )
    ca = component.add(
        tls.SelfSignedCert(
            f"{name}-ca",
            private_key_pem=ca_key.private_key_pem,
            allowed_uses=["cert_signing"],
            validity_period_hours=CA_VALIDITY_HOURS,
            early_renewal_hours=CA_EARLY_RENEWAL_HOURS,
            is_ca_certificate=True,
            set_subject_key_id=True,
            subject=tls.SelfSignedCertSubjectArgs(**(args.ca_subject or DEFAULT_CA_SUBJECT)),
            opts=component.opts(),
        )
    )

    server_key, server_cert = _leaf_cert(
        f"{name}-server",
        key_args,
        ca,
        SERVER_USES,
        component,
        dns_names=args.server_dns_names,
        ip_addresses=args.server_ip_addresses,
    )
    client_key, client_cert = _leaf_cert(f"{name}-client", key_args, ca, CLIENT_USES, component)

    certs = BuildkitCerts(
        component=component,
        ca_cert_public_key_pem=ca_key.public_key_pem,
        ca_cert_pem=ca.cert_pem,
        server_cert_pem=server_cert.cert_pem,
        server_private_key_pem=server_key.private_key_pem,
        client_cert_pem=client_cert.cert_pem,
        client_private_key_pem=client_key.private_key_pem,
    )
    component.finish(
        {
            "ca_cert_pem": certs.ca_cert_pem,
            "server_cert_pem": certs.server_cert_pem,
            "server_private_key_pem": certs.server_private_key_pem,
            "client_cert_pem": certs.client_cert_pem,
            "client_private_key_pem": certs.client_private_key_pem,
        }
    )
    return certs
