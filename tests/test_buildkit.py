"""Tests for the buildkit certificate and builder components."""

import pulumi
import pytest

from aws_k8s.buildkit import (
    BuildkitBuilderArgs,
    BuildkitCertsArgs,
    PvConfig,
    create_buildkit_builder,
    create_buildkit_certs,
)
from aws_k8s.buildkit.builder import BUILDKIT_PORT, buildkitd_args
from aws_k8s.buildkit.certs import CA_RSA_BITS, LEAF_VALIDITY_HOURS, leaf_key_args
from aws_k8s.errors import ConfigurationError
from tests.conftest import registered

PRIVATE_KEY = "tls:index/privateKey:PrivateKey"
SELF_SIGNED_CERT = "tls:index/selfSignedCert:SelfSignedCert"
CERT_REQUEST = "tls:index/certRequest:CertRequest"
LOCALLY_SIGNED_CERT = "tls:index/locallySignedCert:LocallySignedCert"
STATEFUL_SET = "kubernetes:apps/v1:StatefulSet"
DAEMON_SET = "kubernetes:apps/v1:DaemonSet"
PVC = "kubernetes:core/v1:PersistentVolumeClaim"
SERVICE = "kubernetes:core/v1:Service"


class TestLeafKeyArgs:
    def test_rsa_default(self):
        assert leaf_key_args("RSA") == {"algorithm": "RSA", "rsa_bits": 2048}

    def test_ecdsa_uses_p256(self):
        assert leaf_key_args("ECDSA") == {"algorithm": "ECDSA", "ecdsa_curve": "P256"}

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ConfigurationError, match="key_algorithm"):
            leaf_key_args("DSA")


class TestBuildkitCerts:
    """Test the CA and leaf certificate chain."""

    @pulumi.runtime.test
    def test_ca_and_leaf_certificates(self, mocks):
        certs = create_buildkit_certs(
            "bk",
            BuildkitCertsArgs(server_ip_addresses=["10.0.0.10"], server_dns_names=["buildkit.internal"]),
        )

        def check(_):
            ca_key = mocks.inputs(PRIVATE_KEY, "bk-ca-key")
            assert ca_key["algorithm"] == "RSA"
            assert ca_key["rsaBits"] == CA_RSA_BITS

            ca = mocks.inputs(SELF_SIGNED_CERT, "bk-ca")
            assert ca["isCaCertificate"] is True
            assert ca["allowedUses"] == ["cert_signing"]
            assert ca["subject"]["commonName"] == "buildkit-ca"

            server_request = mocks.inputs(CERT_REQUEST, "bk-server-cert-request")
            assert server_request["ipAddresses"] == ["10.0.0.10"]
            assert server_request["dnsNames"] == ["buildkit.internal"]
            assert "ipAddresses" not in mocks.inputs(CERT_REQUEST, "bk-client-cert-request")

            server = mocks.inputs(LOCALLY_SIGNED_CERT, "bk-server-cert")
            client = mocks.inputs(LOCALLY_SIGNED_CERT, "bk-client-cert")
            assert "server_auth" in server["allowedUses"]
            assert "client_auth" in client["allowedUses"]
            assert server["validityPeriodHours"] == LEAF_VALIDITY_HOURS

            assert len(mocks.of_type(PRIVATE_KEY)) == 3

        return registered(certs.component).apply(check)

    @pulumi.runtime.test
    def test_ecdsa_leaf_keys(self, mocks):
        certs = create_buildkit_certs("ec", BuildkitCertsArgs(key_algorithm="ECDSA"))

        def check(_):
            assert mocks.inputs(PRIVATE_KEY, "ec-server-key")["ecdsaCurve"] == "P256"
            assert mocks.inputs(PRIVATE_KEY, "ec-client-key")["algorithm"] == "ECDSA"
            # The CA stays RSA.
            assert mocks.inputs(PRIVATE_KEY, "ec-ca-key")["algorithm"] == "RSA"

        return registered(certs.component).apply(check)


def _builder_args(**kwargs) -> BuildkitBuilderArgs:
    return BuildkitBuilderArgs(
        ca_cert_pem="ca",
        cert_pem="cert",
        private_key_pem="key",
        **kwargs,
    )


class TestBuildkitBuilder:
    """Test the buildkitd workload."""

    def test_daemon_listens_on_socket_and_tls_port(self):
        args = buildkitd_args()

        assert f"tcp://0.0.0.0:{BUILDKIT_PORT}" in args
        assert args[args.index("--tlscacert") + 1] == "/certs/ca.pem"
        assert "--oci-worker-no-process-sandbox" in args

    @pulumi.runtime.test
    def test_default_builder_uses_empty_dir(self, mocks):
        builder = create_buildkit_builder("bk", _builder_args())

        def check(_):
            stateful_set = mocks.inputs(STATEFUL_SET, "bk-buildkitd")
            pod = stateful_set["spec"]["template"]["spec"]
            container = pod["containers"][0]

            assert stateful_set["spec"]["replicas"] == 1
            assert container["securityContext"]["runAsUser"] == 1000
            assert container["securityContext"]["appArmorProfile"] == {"type": "Unconfined"}
            assert container["ports"] == [{"containerPort": BUILDKIT_PORT}]
            state = next(v for v in pod["volumes"] if v["name"] == "buildkitd")
            assert "persistentVolumeClaim" not in state

            service = mocks.inputs(SERVICE, "bk-service")
            assert service["spec"]["ports"][0]["port"] == BUILDKIT_PORT
            assert service["spec"]["selector"] == {"app": "bk-buildkitd"}

            assert mocks.of_type(PVC) == []
            assert mocks.of_type(DAEMON_SET) == []

        return registered(builder.component).apply(check)

    @pulumi.runtime.test
    def test_persistent_state_on_bottlerocket(self, mocks):
        builder = create_buildkit_builder(
            "persist",
            _builder_args(pv_config=PvConfig(storage_class="gp3", size="50Gi"), bottlerocket=True, replicas=2),
        )

        def check(_):
            pvc = mocks.inputs(PVC, "persist-buildkitd-pvc")
            assert pvc["spec"]["storageClassName"] == "gp3"
            assert pvc["spec"]["resources"]["requests"] == {"storage": "50Gi"}

            pod = mocks.inputs(STATEFUL_SET, "persist-buildkitd")["spec"]["template"]["spec"]
            state = next(v for v in pod["volumes"] if v["name"] == "buildkitd")
            assert state["persistentVolumeClaim"]["claimName"] == "persist-buildkitd-pvc"

            sysctl = mocks.inputs(DAEMON_SET, "persist-sysctl-userns")
            command = sysctl["spec"]["template"]["spec"]["containers"][0]["command"]
            assert "user.max_user_namespaces=63359" in command[-1]

        return registered(builder.component).apply(check)
