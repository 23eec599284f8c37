"""
Utility functions for naming PersistentVolumeClaims of a cluster.
"""
import re

WAL_SUFFIX = "-wal"
TABLESPACE_INFIX = "-tablespace-"

# DNS-1123 subdomain: lowercase alphanumerics, '-' and '.', alphanumeric at both ends
_CLAIM_NAME_PATTERN = re.compile(r'^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$')
_MAX_CLAIM_NAME_LENGTH = 253


def wal_claim_name(claim_name_prefix: str) -> str:
    """
    Name of the write-ahead log claim for a cluster.

    Examples:
        wal_claim_name("hippo") -> "hippo-wal"
    """
    return f"{claim_name_prefix}{WAL_SUFFIX}"


def tablespace_claim_name(claim_name_prefix: str, tablespace_name: str) -> str:
    """
    Name of the claim backing a tablespace.

    Examples:
        tablespace_claim_name("hippo", "lake") -> "hippo-tablespace-lake"
    """
    return f"{claim_name_prefix}{TABLESPACE_INFIX}{tablespace_name}"


def validate_claim_name(name: str) -> bool:
    """
    Validate if a claim name is Kubernetes-compliant.

    Args:
        name: Claim name to validate

    Returns:
        True if valid, False otherwise
    """
    if not name or len(name) > _MAX_CLAIM_NAME_LENGTH:
        return False
    return bool(_CLAIM_NAME_PATTERN.match(name))
