"""
Source-control adapters.

``get_adapter`` resolves the adapter class for a platform type; it is the
single place new platforms are wired in.
"""

from adapters.base import GitPlatformAdapter
from adapters.github import GitHubAdapter
from adapters.gitlab import GitLabAdapter
from models.platform import PlatformType

ADAPTERS: dict[PlatformType, type[GitPlatformAdapter]] = {
    PlatformType.GITLAB: GitLabAdapter,
    PlatformType.GITHUB: GitHubAdapter,
}


def get_adapter(
    platform_type: str | PlatformType,
    base_url: str = "",
    token: str = "",
    timeout: int = 30,
) -> GitPlatformAdapter:
    """
    Build the adapter for a platform.

    Raises:
        ValueError: If the platform type is not supported
    """
    try:
        platform = PlatformType(str(getattr(platform_type, "value", platform_type)).lower())
    except ValueError:
        raise ValueError(f"Unsupported platform: {platform_type}") from None
    return ADAPTERS[platform](base_url=base_url, token=token, timeout=timeout)


__all__ = ["GitPlatformAdapter", "GitHubAdapter", "GitLabAdapter", "ADAPTERS", "get_adapter"]
