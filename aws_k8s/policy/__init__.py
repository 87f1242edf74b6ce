from aws_k8s.policy.document import Condition, PolicyDocument, Principal, Statement, StatementTemplate
from aws_k8s.policy.karpenter import (
    CONTROLLER_STATEMENTS,
    INTERRUPTION_EVENTS,
    PolicyScope,
    QueueEncryptionMode,
    controller_policy_document,
    queue_policy_document,
    resolve_queue_encryption,
)
from aws_k8s.policy.trust import (
    NamespacedServiceAccount,
    irsa_trust_document,
    resolve_oidc_issuer,
    service_trust_document,
)

__all__ = [
    "CONTROLLER_STATEMENTS",
    "INTERRUPTION_EVENTS",
    "Condition",
    "NamespacedServiceAccount",
    "PolicyDocument",
    "PolicyScope",
    "Principal",
    "QueueEncryptionMode",
    "Statement",
    "StatementTemplate",
    "controller_policy_document",
    "irsa_trust_document",
    "queue_policy_document",
    "resolve_oidc_issuer",
    "resolve_queue_encryption",
    "service_trust_document",
]
