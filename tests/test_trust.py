"""Unit tests for IAM trust relationships."""

import logging
from types import SimpleNamespace

import pytest

from aws_k8s.errors import ClusterLookupError
from aws_k8s.policy.trust import (
    NamespacedServiceAccount,
    irsa_trust_document,
    issuer_host,
    oidc_provider_arn,
    resolve_oidc_issuer,
    service_trust_document,
)

ISSUER = "https://oidc.eks.us-west-2.amazonaws.com/id/EXAMPLE"
HOST = "oidc.eks.us-west-2.amazonaws.com/id/EXAMPLE"


class TestIrsaTrustDocument:
    """Test OIDC federation trust for service accounts."""

    @pytest.mark.parametrize("count", [0, 1, 3])
    def test_one_audience_and_n_subject_conditions(self, count):
        """Each service account adds one subject condition; the audience condition is always present."""
        accounts = [NamespacedServiceAccount("team", f"sa-{i}") for i in range(count)]
        statement = irsa_trust_document(ISSUER, "aws", "123456789012", accounts).statements[0]

        assert len(statement.conditions_for(":aud")) == 1
        assert len(statement.conditions_for(":sub")) == count

    def test_rendered_document_shape(self):
        """The rendered JSON carries the federated principal and grouped conditions."""
        doc = irsa_trust_document(
            ISSUER,
            "aws",
            "123456789012",
            [
                NamespacedServiceAccount("kube-system", "aws-node"),
                NamespacedServiceAccount("kube-system", "ebs-csi-controller-sa"),
            ],
        ).to_dict()

        statement = doc["Statement"][0]
        assert doc["Version"] == "2012-10-17"
        assert statement["Action"] == ["sts:AssumeRoleWithWebIdentity"]
        assert statement["Principal"] == {
            "Federated": f"arn:aws:iam::123456789012:oidc-provider/{HOST}"
        }
        assert statement["Condition"]["StringEquals"] == {
            f"{HOST}:sub": [
                "system:serviceaccount:kube-system:aws-node",
                "system:serviceaccount:kube-system:ebs-csi-controller-sa",
            ],
            f"{HOST}:aud": ["sts.amazonaws.com"],
        }

    def test_condition_keys_use_bare_issuer_host(self):
        """IAM condition keys never include the URL scheme."""
        statement = irsa_trust_document(ISSUER, "aws", "123456789012").statements[0]

        assert all(not c.variable.startswith("https://") for c in statement.conditions)

    def test_unrestricted_trust_logs_warning(self, caplog):
        """A trust with no service accounts is allowed but flagged."""
        with caplog.at_level(logging.WARNING, logger="aws_k8s.policy.trust"):
            irsa_trust_document(ISSUER, "aws", "123456789012", [])

        assert "no service accounts" in caplog.text

    def test_partition_flows_into_provider_arn(self):
        assert oidc_provider_arn(ISSUER, "aws-cn", "111122223333") == (
            f"arn:aws-cn:iam::111122223333:oidc-provider/{HOST}"
        )


class TestServiceTrustDocument:
    """Test trust for AWS service principals."""

    def test_principal_uses_dns_suffix(self):
        doc = service_trust_document("ec2", "amazonaws.com.cn").to_dict()

        assert doc["Statement"][0]["Principal"] == {"Service": "ec2.amazonaws.com.cn"}

    def test_default_actions_allow_session_tags(self):
        doc = service_trust_document("pods.eks", "amazonaws.com").to_dict()

        assert doc["Statement"][0]["Action"] == ["sts:AssumeRole", "sts:TagSession"]


class TestResolveOidcIssuer:
    """Test OIDC issuer extraction from cluster lookups."""

    def test_returns_first_issuer_from_dicts(self):
        identities = [{"oidcs": [{"issuer": ISSUER}]}]

        assert resolve_oidc_issuer("demo", identities) == ISSUER

    def test_returns_first_issuer_from_objects(self):
        identities = [SimpleNamespace(oidcs=[SimpleNamespace(issuer=ISSUER)])]

        assert resolve_oidc_issuer("demo", identities) == ISSUER

    def test_no_identities_raises(self):
        with pytest.raises(ClusterLookupError, match="No identities found for cluster demo"):
            resolve_oidc_issuer("demo", [])

    def test_no_oidc_issuer_raises(self):
        with pytest.raises(ClusterLookupError, match="No OIDC issuers found for cluster demo") as exc:
            resolve_oidc_issuer("demo", [{"oidcs": []}])

        assert exc.value.cluster_name == "demo"

    def test_issuer_host_strips_scheme(self):
        assert issuer_host(ISSUER) == HOST
        assert issuer_host(HOST) == HOST
