import ipaddress
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from aws_k8s.errors import ConfigurationError


class IpFamily(str, Enum):
    """IP family used for Kubernetes service addresses."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"


class EndpointType(str, Enum):
    """EKS API server endpoint exposure."""

    PUBLIC = "public"
    PRIVATE = "private"


class SupportType(str, Enum):
    """EKS version support policy."""

    STANDARD = "STANDARD"
    EXTENDED = "EXTENDED"


class KeyAlgorithm(str, Enum):
    RSA = "RSA"
    ECDSA = "ECDSA"


def parse_enum(enum_type, value, field_name: str):
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_type)
        raise ConfigurationError(field_name, f"{value!r} is not one of {allowed}") from None


class NetworkConfigInput(BaseModel):
    """Service networking for the cluster."""

    ip_family: IpFamily = Field(default=IpFamily.IPV4, description="IP family for services")
    service_cidr: str = Field(..., description="CIDR block for Kubernetes services")

    @field_validator("service_cidr")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        try:
            ipaddress.ip_network(v, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid CIDR block: {e}") from e
        return v

    @model_validator(mode="after")
    def cidr_matches_family(self) -> "NetworkConfigInput":
        version = ipaddress.ip_network(self.service_cidr, strict=False).version
        expected = 4 if self.ip_family == IpFamily.IPV4 else 6
        if version != expected:
            raise ValueError(
                f"service_cidr {self.service_cidr} is not an IPv{expected} range "
                f"but ip_family is {self.ip_family.value}"
            )
        return self


class AddonConfigInput(BaseModel):
    """Configuration for a single EKS managed addon."""

    version: Optional[str] = Field(default=None, description="Pinned addon version")
    most_recent: Optional[bool] = Field(default=None, description="Use the newest compatible version")
    configuration: dict[str, Any] = Field(default_factory=dict)
    resolve_conflicts_on_create: Optional[str] = None
    resolve_conflicts_on_update: Optional[str] = None
    tags: dict[str, str] = Field(default_factory=dict)


class AutoModeConfigInput(BaseModel):
    enabled: bool = True
    node_pools: list[str] = Field(default_factory=lambda: ["general-purpose", "system"])
    node_role_arn: Optional[str] = None


class ClusterConfigInput(BaseModel):
    """Cluster configuration as read from stack config."""

    name: Optional[str] = None
    subnet_ids: list[str] = Field(..., min_length=1, description="Subnets for the control plane")
    security_group_ids: list[str] = Field(default_factory=list)
    api_server_endpoints: list[EndpointType] = Field(default_factory=lambda: [EndpointType.PUBLIC])
    version: Optional[str] = None
    network: Optional[NetworkConfigInput] = None
    zonal_shift_enabled: bool = False
    support_type: Optional[SupportType] = None
    auto_mode: AutoModeConfigInput = Field(default_factory=AutoModeConfigInput)
    addons: dict[str, AddonConfigInput] = Field(default_factory=dict)
    create_oidc_provider: bool = False
    tags: dict[str, str] = Field(default_factory=dict)


class QueueConfigInput(BaseModel):
    """Interruption queue settings."""

    name: Optional[str] = None
    managed_sse_enabled: Optional[bool] = None
    kms_master_key_id: Optional[str] = None
    kms_data_key_reuse_period_seconds: Optional[int] = Field(default=None, ge=60, le=86400)
    tags: dict[str, str] = Field(default_factory=dict)


class RoleConfigInput(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    path: Optional[str] = None
    max_session_duration: Optional[int] = Field(default=None, ge=3600, le=43200)
    permissions_boundary: Optional[str] = None
    additional_managed_policy_arns: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)


class KarpenterConfigInput(BaseModel):
    """Karpenter settings as read from stack config."""

    version: str = Field(..., description="Karpenter Helm chart version")
    queue: QueueConfigInput = Field(default_factory=QueueConfigInput)
    controller_role_arn: Optional[str] = None
    controller_role: RoleConfigInput = Field(default_factory=RoleConfigInput)
    node_role_arn: Optional[str] = None
    node_role: RoleConfigInput = Field(default_factory=RoleConfigInput)
    service_account: str = "karpenter"
    create_access_entry: bool = True
    helm_values: dict[str, Any] = Field(default_factory=dict)
