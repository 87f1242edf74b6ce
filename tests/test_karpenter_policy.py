"""Unit tests for the Karpenter controller and interruption queue policies."""

import json

import pytest

from aws_k8s.errors import ConfigurationError
from aws_k8s.policy.document import PolicyDocument, Statement
from aws_k8s.policy.karpenter import (
    CLUSTER_SCOPED_SIDS,
    CONTROLLER_STATEMENTS,
    INTERRUPTION_EVENTS,
    PolicyScope,
    QueueEncryptionMode,
    controller_policy_document,
    controller_statement,
    queue_policy_document,
    resolve_queue_encryption,
)

QUEUE_ARN = "arn:aws:sqs:us-west-2:123456789012:demo-karpenter"
NODE_ROLE_ARN = "arn:aws:iam::123456789012:role/Karpenter-demo"


@pytest.fixture
def scope() -> PolicyScope:
    return PolicyScope(
        partition="aws",
        region="us-west-2",
        dns_suffix="amazonaws.com",
        cluster_name="demo",
        queue_arn=QUEUE_ARN,
        node_role_arn=NODE_ROLE_ARN,
    )


class TestControllerPolicy:
    """Test the least-privilege controller policy."""

    def test_all_sixteen_statements_in_order(self, scope):
        doc = controller_policy_document(scope)

        assert doc.sids == list(CONTROLLER_STATEMENTS)
        assert len(doc.sids) == 16
        assert doc.sids[0] == "AllowScopedEC2InstanceAccessActions"
        assert doc.sids[-1] == "AllowAPIServerEndpointDiscovery"

    def test_sids_are_unique(self, scope):
        sids = controller_policy_document(scope).sids

        assert len(sids) == len(set(sids))

    def test_every_statement_names_actions_and_resources(self, scope):
        for statement in controller_policy_document(scope).statements:
            assert statement.actions, statement.sid
            assert statement.resources, statement.sid

    @pytest.mark.parametrize("sid", sorted(CLUSTER_SCOPED_SIDS))
    def test_cluster_scoped_statements_require_ownership_tag(self, scope, sid):
        """Statements touching launched resources are pinned to the owning cluster."""
        statement = controller_statement(sid, scope)
        owned = statement.conditions_for("kubernetes.io/cluster/demo")

        assert owned
        assert all(c.test == "StringEquals" and c.values == ("owned",) for c in owned)

    def test_cluster_scoped_sids_cover_mutating_ec2_statements(self):
        assert {
            "AllowScopedEC2LaunchTemplateAccessActions",
            "AllowScopedEC2InstanceActionsWithTags",
            "AllowScopedResourceCreationTagging",
            "AllowScopedResourceTagging",
            "AllowScopedDeletion",
            "AllowScopedInstanceProfileCreationActions",
            "AllowScopedInstanceProfileTagActions",
            "AllowScopedInstanceProfileActions",
        } <= CLUSTER_SCOPED_SIDS

    def test_templates_render_scope_values(self, scope):
        doc = controller_policy_document(scope)

        assert doc.statement("AllowInterruptionQueueActions").resources == (QUEUE_ARN,)
        assert doc.statement("AllowPassingInstanceRole").resources == (NODE_ROLE_ARN,)
        assert doc.statement("AllowAPIServerEndpointDiscovery").resources == (
            "arn:aws:eks:us-west-2:*:cluster/demo",
        )
        passed_to = doc.statement("AllowPassingInstanceRole").conditions_for("iam:PassedToService")
        assert passed_to[0].values == ("ec2.amazonaws.com",)

    def test_rendered_json_has_no_unfilled_placeholders(self, scope):
        rendered = controller_policy_document(scope).to_json()

        for field in ("{partition}", "{region}", "{cluster_name}", "{queue_arn}", "{node_role_arn}", "{dns_suffix}"):
            assert field not in rendered

    def test_duplicate_sids_rejected(self):
        statement = Statement(sid="Same", effect="Allow", actions=("s3:GetObject",), resources=("*",))

        with pytest.raises(ConfigurationError, match="duplicate sid"):
            PolicyDocument(statements=(statement, statement))


class TestQueuePolicy:
    """Test the interruption queue policy."""

    def test_send_message_granted_to_two_service_principals(self):
        doc = queue_policy_document(QUEUE_ARN, "amazonaws.com").to_dict()
        write = next(s for s in doc["Statement"] if s["Sid"] == "SqsWrite")

        assert write["Action"] == ["sqs:SendMessage"]
        assert write["Principal"] == {"Service": ["events.amazonaws.com", "sqs.amazonaws.com"]}
        assert write["Resource"] == [QUEUE_ARN]

    @pytest.mark.parametrize("dns_suffix", ["amazonaws.com", "amazonaws.com.cn", "c2s.ic.gov"])
    def test_deny_insecure_transport_always_present(self, dns_suffix):
        doc = queue_policy_document(QUEUE_ARN, dns_suffix).to_dict()
        deny = next(s for s in doc["Statement"] if s["Sid"] == "DenyHTTP")

        assert deny["Effect"] == "Deny"
        assert deny["Principal"] == "*"
        assert deny["Action"] == ["sqs:*"]
        assert deny["Condition"] == {"StringEquals": {"aws:SecureTransport": ["false"]}}


class TestQueueEncryption:
    """Test interruption queue encryption selection."""

    def test_managed_sse_with_kms_key_conflicts(self):
        with pytest.raises(ConfigurationError) as exc:
            resolve_queue_encryption(True, "alias/queue", None)

        assert exc.value.field == "queue.managed_sse_enabled"

    def test_managed_sse_with_reuse_period_conflicts(self):
        with pytest.raises(ConfigurationError):
            resolve_queue_encryption(True, None, 300)

    def test_defaults_to_managed_sse(self):
        assert resolve_queue_encryption(None, None, None) == QueueEncryptionMode.MANAGED_SSE

    def test_kms_key_selects_customer_kms(self):
        assert resolve_queue_encryption(None, "alias/queue", None) == QueueEncryptionMode.CUSTOMER_KMS
        assert resolve_queue_encryption(False, None, 300) == QueueEncryptionMode.CUSTOMER_KMS


class TestInterruptionEvents:
    """Test the EventBridge rule table."""

    def test_four_events(self):
        assert list(INTERRUPTION_EVENTS) == [
            "HealthEvent",
            "SpotInterrupt",
            "InstanceRebalance",
            "InstanceStateChange",
        ]

    def test_patterns_use_eventbridge_field_names(self):
        for event in INTERRUPTION_EVENTS.values():
            pattern = json.loads(json.dumps(event["event_pattern"]))
            assert set(pattern) == {"source", "detail-type"}
