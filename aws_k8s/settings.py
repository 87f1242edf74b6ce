from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AWS_K8S_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"

    karpenter_chart: str = "oci://public.ecr.aws/karpenter/karpenter"
    karpenter_namespace: str = "kube-system"


@lru_cache
def get_settings() -> Settings:
    return Settings()
