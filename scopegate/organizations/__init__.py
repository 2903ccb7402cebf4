from scopegate.organizations.credentials import OrganizationCredentials, load_credentials_file
from scopegate.organizations.registry import OrganizationContext, OrganizationRegistry

__all__ = [
    "OrganizationContext",
    "OrganizationCredentials",
    "OrganizationRegistry",
    "load_credentials_file",
]
