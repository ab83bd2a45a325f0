import re
import secrets
import string
from typing import Optional

from kubarango.modules.api.models import ServerGroup

_DNS1123_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN = re.compile(rf"^{_DNS1123_LABEL}(\.{_DNS1123_LABEL})*$")
_MAX_SUBDOMAIN_LENGTH = 253

_MEMBER_ID_PREFIXES = {
    ServerGroup.SINGLE: "SNGL",
    ServerGroup.AGENTS: "AGNT",
    ServerGroup.DBSERVERS: "PRMR",
    ServerGroup.COORDINATORS: "CRDN",
    ServerGroup.SYNCMASTERS: "SYNM",
    ServerGroup.SYNCWORKERS: "SYNW",
}


def validate_resource_name(name: str) -> None:
    """
    Check that name is a valid DNS-1123 subdomain.

    Raises:
        ValueError: If the name is not valid
    """
    if not name:
        raise ValueError("Name must not be empty")
    if len(name) > _MAX_SUBDOMAIN_LENGTH:
        raise ValueError(f"Name '{name}' is longer than {_MAX_SUBDOMAIN_LENGTH} characters")
    if not _DNS1123_SUBDOMAIN.match(name):
        raise ValueError(
            f"Name '{name}' must consist of lower case alphanumeric characters, '-' or '.'"
        )


def validate_optional_resource_name(name: str) -> None:
    if name:
        validate_resource_name(name)


def strip_invalid_dns_chars(name: str) -> str:
    """Lowercase a name and drop characters not allowed in DNS labels."""
    return re.sub(r"[^a-z0-9-]", "", name.lower())


def create_member_id(group: ServerGroup) -> str:
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(8))
    return f"{_MEMBER_ID_PREFIXES[group]}-{suffix}"


def create_pod_name(deployment: str, role: str, member_id: str, suffix: str = "") -> str:
    name = f"{deployment}-{role}-{strip_invalid_dns_chars(member_id)}"
    if suffix:
        name = f"{name}-{suffix}"
    return name


def create_headless_service_name(deployment: str) -> str:
    return f"{deployment}-int"


def create_pod_dns_name(
    deployment: str,
    namespace: str,
    role: str,
    member_id: str,
    domain: Optional[str] = None,
) -> str:
    """DNS name of a member pod, reachable through the headless service."""
    name = (
        f"{create_pod_name(deployment, role, member_id)}."
        f"{create_headless_service_name(deployment)}.{namespace}.svc"
    )
    if domain:
        name = f"{name}.{domain}"
    return name


def create_database_client_service_dns_name(
    deployment: str, namespace: str, domain: Optional[str] = None
) -> str:
    name = f"{deployment}.{namespace}.svc"
    if domain:
        name = f"{name}.{domain}"
    return name
