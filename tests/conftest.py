"""
Pytest configuration and shared fixtures.

Pulumi wiring is exercised against ``pulumi.runtime.set_mocks``: every
resource registration is recorded on ``MOCKS`` and every provider invoke is
answered from fixed AWS fixtures (account 123456789012, us-west-2).
"""

from typing import Any, Optional

import pulumi
import pytest

ACCOUNT_ID = "123456789012"
REGION = "us-west-2"
OIDC_ISSUER = "https://oidc.eks.us-west-2.amazonaws.com/id/EXAMPLED539D4633E53DE1B71EXAMPLE"
CLUSTER_ENDPOINT = "https://EXAMPLE.gr7.us-west-2.eks.amazonaws.com"
CLUSTER_CA_DATA = "Y2VydGlmaWNhdGUtYXV0aG9yaXR5"
CALLER_ARN = f"arn:aws:sts::{ACCOUNT_ID}:assumed-role/deployer/session"
CALLER_ISSUER_ARN = f"arn:aws:iam::{ACCOUNT_ID}:role/deployer"


class AwsK8sMocks(pulumi.runtime.Mocks):
    """Records registered resources and answers AWS and TLS invokes."""

    def __init__(self):
        self.resources: list[pulumi.runtime.MockResourceArgs] = []
        self.cluster_ip_family = "ipv4"
        self.cluster_identities: Optional[list] = None
        # Addon name -> version returned by getAddonVersion; missing means a default.
        self.addon_versions: dict[str, str] = {}

    def reset(self) -> None:
        self.resources.clear()
        self.cluster_ip_family = "ipv4"
        self.cluster_identities = None
        self.addon_versions = {}

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        outputs = dict(args.inputs)
        name = outputs.get("name") or args.name

        if args.typ == "aws:iam/role:Role":
            outputs["name"] = name
            outputs["arn"] = f"arn:aws:iam::{ACCOUNT_ID}:role/{name}"
        elif args.typ == "aws:iam/policy:Policy":
            outputs["arn"] = f"arn:aws:iam::{ACCOUNT_ID}:policy/{name}"
        elif args.typ == "aws:kms/key:Key":
            outputs["arn"] = f"arn:aws:kms:{REGION}:{ACCOUNT_ID}:key/{args.name}"
        elif args.typ == "aws:sqs/queue:Queue":
            outputs["name"] = name
            outputs["arn"] = f"arn:aws:sqs:{REGION}:{ACCOUNT_ID}:{name}"
            outputs["url"] = f"https://sqs.{REGION}.amazonaws.com/{ACCOUNT_ID}/{name}"
        elif args.typ == "aws:cloudwatch/eventRule:EventRule":
            outputs["name"] = name
            outputs["arn"] = f"arn:aws:events:{REGION}:{ACCOUNT_ID}:rule/{name}"
        elif args.typ == "aws:eks/cluster:Cluster":
            outputs["name"] = name
            outputs["arn"] = f"arn:aws:eks:{REGION}:{ACCOUNT_ID}:cluster/{name}"
            outputs["endpoint"] = CLUSTER_ENDPOINT
            outputs["version"] = outputs.get("version") or "1.31"
            outputs["identities"] = [{"oidcs": [{"issuer": OIDC_ISSUER}]}]
            outputs["certificateAuthority"] = {"data": CLUSTER_CA_DATA}
            outputs["vpcConfig"] = {**outputs.get("vpcConfig", {}), "clusterSecurityGroupId": "sg-0cluster"}
        elif args.typ == "aws:iam/openIdConnectProvider:OpenIdConnectProvider":
            outputs["arn"] = f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/{OIDC_ISSUER[len('https://'):]}"

        return [f"{args.name}_id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        token = args.token

        if token == "aws:index/getPartition:getPartition":
            return {"id": "aws", "partition": "aws", "dnsSuffix": "amazonaws.com", "reverseDnsPrefix": "com.amazonaws"}
        if token == "aws:index/getRegion:getRegion":
            return {"id": REGION, "name": REGION, "description": "US West (Oregon)"}
        if token == "aws:index/getCallerIdentity:getCallerIdentity":
            return {"id": ACCOUNT_ID, "accountId": ACCOUNT_ID, "arn": CALLER_ARN, "userId": "AROAEXAMPLE:session"}
        if token == "aws:iam/getSessionContext:getSessionContext":
            return {
                "id": args.args.get("arn"),
                "arn": args.args.get("arn"),
                "issuerArn": CALLER_ISSUER_ARN,
                "issuerId": "AROAEXAMPLE",
                "issuerName": "deployer",
                "sessionName": "session",
            }
        if token == "aws:eks/getCluster:getCluster":
            cluster_name = args.args.get("name")
            identities = self.cluster_identities
            if identities is None:
                identities = [{"oidcs": [{"issuer": OIDC_ISSUER}]}]
            return {
                "id": cluster_name,
                "name": cluster_name,
                "arn": f"arn:aws:eks:{REGION}:{ACCOUNT_ID}:cluster/{cluster_name}",
                "endpoint": CLUSTER_ENDPOINT,
                "certificateAuthorities": [{"data": CLUSTER_CA_DATA}],
                "identities": identities,
                "kubernetesNetworkConfigs": [{"ipFamily": self.cluster_ip_family}],
            }
        if token == "aws:eks/getAddonVersion:getAddonVersion":
            addon_name = args.args.get("addonName")
            version = self.addon_versions.get(addon_name, f"v1.0.0-eksbuild.1-{addon_name}")
            return {
                "id": addon_name,
                "addonName": addon_name,
                "kubernetesVersion": args.args.get("kubernetesVersion"),
                "version": version,
            }
        if token == "tls:index/getCertificate:getCertificate":
            return {
                "id": args.args.get("url"),
                "url": args.args.get("url"),
                "certificates": [{"sha1Fingerprint": "9e99a48a9960b14926bb7f3b02e22da2b0ab7280"}],
            }
        return {}

    def of_type(self, typ: str) -> list[pulumi.runtime.MockResourceArgs]:
        return [r for r in self.resources if r.typ == typ]

    def find(self, typ: str, name: str) -> pulumi.runtime.MockResourceArgs:
        for resource in self.of_type(typ):
            if resource.name == name:
                return resource
        raise KeyError(f"{typ} {name}")

    def inputs(self, typ: str, name: str) -> dict[str, Any]:
        return dict(self.find(typ, name).inputs)


MOCKS = AwsK8sMocks()
pulumi.runtime.set_mocks(MOCKS, preview=False)


@pytest.fixture
def mocks() -> AwsK8sMocks:
    """Return the shared mocks, reset for the test."""
    MOCKS.reset()
    return MOCKS


def registered(component) -> pulumi.Output:
    """Resolve once every child of ``component`` has been registered."""
    return pulumi.Output.all(*[child.urn for child in component.children])
