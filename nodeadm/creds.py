"""Credential providers a hybrid node can authenticate with."""
from enum import Enum


class CredentialProvider(str, Enum):
    """How the node obtains cloud credentials."""
    SSM = 'ssm'
    IAM_ROLES_ANYWHERE = 'iam-ra'

    @classmethod
    def parse(cls, value: str) -> 'CredentialProvider':
        for provider in cls:
            if provider.value == value:
                return provider
        raise ValueError(
            f"invalid credential provider: {value}. Supported: "
            f"{', '.join(p.value for p in cls)}"
        )
