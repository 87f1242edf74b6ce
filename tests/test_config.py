"""Unit tests for stack configuration loading."""

import json

import pytest

from aws_k8s.config import cluster_args, karpenter_args, load_stack_config
from aws_k8s.errors import ConfigurationError
from aws_k8s.models import EndpointType, IpFamily


class FakeConfig:
    """Stands in for ``pulumi.Config``; values are strings as Pulumi returns them."""

    def __init__(self, values: dict[str, str]):
        self.values = values

    def get(self, key: str):
        return self.values.get(key)


BASE = {
    "subnetIds": "subnet-a, subnet-b",
    "karpenterVersion": "1.3.2",
}


def _load(**overrides):
    return load_stack_config(FakeConfig({**BASE, **overrides}))


class TestLoadStackConfig:
    """Test parsing and validation of stack config values."""

    def test_minimal_config(self):
        config = _load()

        assert config.cluster.subnet_ids == ["subnet-a", "subnet-b"]
        assert config.cluster.api_server_endpoints == [EndpointType.PUBLIC]
        assert config.cluster.auto_mode.enabled
        assert config.cluster.auto_mode.node_pools == ["general-purpose", "system"]
        assert config.karpenter.version == "1.3.2"
        assert config.karpenter.service_account == "karpenter"

    def test_missing_subnets_rejected(self):
        with pytest.raises(ConfigurationError, match="cluster.subnet_ids"):
            load_stack_config(FakeConfig({"karpenterVersion": "1.3.2"}))

    def test_missing_karpenter_version_rejected(self):
        with pytest.raises(ConfigurationError, match="karpenter.version"):
            load_stack_config(FakeConfig({"subnetIds": "subnet-a"}))

    def test_karpenter_disabled(self):
        config = load_stack_config(FakeConfig({"subnetIds": "subnet-a", "karpenterEnabled": "false"}))

        assert config.karpenter is None

    def test_karpenter_enabled_flag_is_not_part_of_the_model(self):
        """The enabled flag only gates loading; the loaded settings carry no such field."""
        config = _load(karpenterEnabled="true")

        assert config.karpenter is not None
        assert "enabled" not in type(config.karpenter).model_fields

    def test_network_family_must_match_cidr(self):
        with pytest.raises(ConfigurationError, match="cluster.network"):
            _load(ipFamily="ipv6", serviceCidr="10.100.0.0/16")

    def test_ipv6_network(self):
        config = _load(ipFamily="ipv6", serviceCidr="fd00:10:100::/108")

        assert config.cluster.network.ip_family == IpFamily.IPV6

    def test_invalid_json_rejected(self):
        with pytest.raises(ConfigurationError, match="addons"):
            _load(addons="{not json")

    def test_queue_reuse_period_bounds(self):
        with pytest.raises(ConfigurationError, match="karpenter.queue"):
            _load(karpenterQueue=json.dumps({"kms_data_key_reuse_period_seconds": 30}))

    def test_tags_apply_to_cluster(self):
        config = _load(tags=json.dumps({"env": "dev"}))

        assert config.tags == {"env": "dev"}
        assert config.cluster.tags == {"env": "dev"}


class TestArgsConversion:
    """Test conversion from validated config to component arguments."""

    def test_cluster_args(self):
        config = _load(
            apiServerEndpoints="public,private",
            kubernetesVersion="1.31",
            supportType="STANDARD",
            autoModeNodePools="system",
            addons=json.dumps({"coredns": {"configuration": {"replicaCount": 3}}, "kube-proxy": {}}),
        )
        args = cluster_args(config.cluster)

        assert args.vpc_config.subnet_ids == ["subnet-a", "subnet-b"]
        assert args.vpc_config.api_server_endpoints == ["public", "private"]
        assert args.vpc_config.cluster_security_group_ids is None
        assert args.support_type == "STANDARD"
        assert args.auto_mode.node_pools == ["system"]
        assert args.addons["coredns"].configuration_values == {"replicaCount": 3}
        assert args.addons["kube-proxy"].configuration_values is None
        assert args.addons["kube-proxy"].addon_version is None

    def test_karpenter_args(self):
        config = _load(
            karpenterNodeRole=json.dumps(
                {"additional_managed_policy_arns": ["arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"]}
            ),
            karpenterHelmValues=json.dumps({"nodeSelector": {"karpenter.sh/nodepool": "system"}}),
        )
        args = karpenter_args(config.karpenter, "demo", {"env": "dev"})

        assert args.cluster_name == "demo"
        assert args.version == "1.3.2"
        assert args.node_role_args.additional_managed_policy_arns == [
            "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"
        ]
        assert args.helm_values == {"nodeSelector": {"karpenter.sh/nodepool": "system"}}
        assert args.queue.managed_sse_enabled is None
        assert args.tags == {"env": "dev"}
