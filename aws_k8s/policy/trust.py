"""Trust relationships for IAM roles.

Two kinds of trust are composed here: OIDC federation for Kubernetes service
accounts (IRSA) and plain service-principal trust for EC2, EKS and EKS Pod
Identity.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from aws_k8s.errors import ClusterLookupError
from aws_k8s.policy.document import STRING_EQUALS, Condition, PolicyDocument, Principal, Statement

logger = logging.getLogger(__name__)

STS_AUDIENCE = "sts.amazonaws.com"
ASSUME_ROLE_WITH_WEB_IDENTITY = "sts:AssumeRoleWithWebIdentity"
SERVICE_ASSUME_ACTIONS = ("sts:AssumeRole", "sts:TagSession")


@dataclass(frozen=True)
class NamespacedServiceAccount:
    """A Kubernetes service account identified by namespace and name."""

    namespace: str
    service_account: str

    @property
    def subject(self) -> str:
        return f"system:serviceaccount:{self.namespace}:{self.service_account}"


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def resolve_oidc_issuer(cluster_name: Optional[str], identities: Optional[Sequence[Any]]) -> str:
    """Return the OIDC issuer URL from an EKS cluster's ``identities`` block.

    Accepts either the typed result of ``aws.eks.get_cluster`` or plain dicts.
    """
    if not identities:
        raise ClusterLookupError(cluster_name, f"No identities found for cluster {cluster_name}")

    oidcs = _field(identities[0], "oidcs") or []
    if not oidcs or not _field(oidcs[0], "issuer"):
        raise ClusterLookupError(cluster_name, f"No OIDC issuers found for cluster {cluster_name}")

    return _field(oidcs[0], "issuer")


def issuer_host(issuer: str) -> str:
    """Strip the URL scheme from an OIDC issuer; IAM keys use the bare host."""
    for scheme in ("https://", "http://"):
        if issuer.startswith(scheme):
            return issuer[len(scheme):]
    return issuer


def oidc_provider_arn(issuer: str, partition: str, account_id: str) -> str:
    return f"arn:{partition}:iam::{account_id}:oidc-provider/{issuer_host(issuer)}"


def audience_condition(issuer: str) -> Condition:
    return Condition.of(STRING_EQUALS, f"{issuer_host(issuer)}:aud", STS_AUDIENCE)


def subject_condition(issuer: str, service_account: NamespacedServiceAccount) -> Condition:
    return Condition.of(STRING_EQUALS, f"{issuer_host(issuer)}:sub", service_account.subject)


def irsa_trust_statement(
    issuer: str,
    partition: str,
    account_id: str,
    service_accounts: Sequence[NamespacedServiceAccount] = (),
) -> Statement:
    if not service_accounts:
        logger.warning(
            "IRSA trust for %s has no service accounts; any service account "
            "in the cluster can assume the role",
            issuer_host(issuer),
        )

    conditions = [subject_condition(issuer, sa) for sa in service_accounts]
    conditions.append(audience_condition(issuer))

    return Statement(
        effect="Allow",
        actions=(ASSUME_ROLE_WITH_WEB_IDENTITY,),
        principals=(Principal("Federated", (oidc_provider_arn(issuer, partition, account_id),)),),
        conditions=tuple(conditions),
    )


def irsa_trust_document(
    issuer: str,
    partition: str,
    account_id: str,
    service_accounts: Sequence[NamespacedServiceAccount] = (),
) -> PolicyDocument:
    """Trust document letting the listed service accounts assume a role via OIDC.

    The subject conditions share one ``StringEquals`` key, so listing several
    service accounts means any of them may assume the role; the audience
    condition always applies on top.
    """
    return PolicyDocument(
        statements=(irsa_trust_statement(issuer, partition, account_id, service_accounts),)
    )


def service_principal(service: str, dns_suffix: str) -> str:
    return f"{service}.{dns_suffix}"


def service_trust_document(
    service: str,
    dns_suffix: str,
    actions: Sequence[str] = SERVICE_ASSUME_ACTIONS,
) -> PolicyDocument:
    """Trust document for an AWS service principal such as ``ec2`` or ``pods.eks``.

    The principal is built from the partition DNS suffix so the same document
    works in the standard, China and isolated partitions.
    """
    return PolicyDocument(
        statements=(
            Statement(
                effect="Allow",
                actions=tuple(actions),
                principals=(Principal("Service", (service_principal(service, dns_suffix),)),),
            ),
        )
    )
