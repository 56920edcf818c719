"""
Registry Endpoint Resolution

Maps a repository string to the registry API base URL, the token endpoint
and the credential lookup to use. Pure and total: every repository string
resolves to exactly one RegistryTarget, nothing here touches the network.

Examples:
    nginx                         → registry-1.docker.io, library/nginx
    linuxserver/sonarr            → registry-1.docker.io, linuxserver/sonarr
    ghcr.io/org/app               → ghcr.io, org/app
    lscr.io/linuxserver/sonarr    → ghcr.io (lscr.io is a ghcr.io frontend)
    gcr.io/project/app            → gcr.io, no token endpoint
    registry.example.com:5000/app → registry.example.com:5000, generic /token
"""

from updates.types import CredentialStrategy, RegistryTarget

DOCKER_HUB_REGISTRY = "https://registry-1.docker.io"
DOCKER_HUB_AUTH_URL = "https://auth.docker.io/token"
DOCKER_HUB_SERVICE = "registry.docker.io"
DOCKER_HUB_HOST = "docker.io"

DOCKER_HUB_ALIASES = ("docker.io", "index.docker.io", "registry-1.docker.io", "registry.hub.docker.com")

GHCR_REGISTRY = "https://ghcr.io"
GHCR_AUTH_URL = "https://ghcr.io/token"
GHCR_SERVICE = "ghcr.io"

# lscr.io only serves linuxserver images, mirrored from ghcr.io/linuxserver
LSCR_HOST = "lscr.io"
LSCR_NAMESPACE = "linuxserver"


def is_registry_host(segment: str) -> bool:
    """First path segment is a registry if it looks like a hostname."""
    return "." in segment or ":" in segment or segment == "localhost"


def _docker_hub_target(image_path: str) -> RegistryTarget:
    # Official images live under library/
    if "/" not in image_path:
        image_path = f"library/{image_path}"
    return RegistryTarget(
        base_url=DOCKER_HUB_REGISTRY,
        auth_token_url=DOCKER_HUB_AUTH_URL,
        auth_service=DOCKER_HUB_SERVICE,
        image_path=image_path,
        original_host=DOCKER_HUB_HOST,
        credential_strategy=CredentialStrategy.DOCKER_HUB,
    )


def resolve(repository: str) -> RegistryTarget:
    """
    Resolve a repository (without tag) to its RegistryTarget.

    Args:
        repository: e.g. "nginx", "ghcr.io/org/app", "registry:5000/team/app"

    Returns:
        RegistryTarget (never raises)
    """
    repository = (repository or "").strip().strip("/")

    if "/" not in repository:
        return _docker_hub_target(repository)

    host, image_path = repository.split("/", 1)

    if not is_registry_host(host):
        # Docker Hub namespaced image (user/app)
        return _docker_hub_target(repository)

    host = host.lower()

    if host in DOCKER_HUB_ALIASES:
        return _docker_hub_target(image_path)

    if host == "ghcr.io":
        return RegistryTarget(
            base_url=GHCR_REGISTRY,
            auth_token_url=GHCR_AUTH_URL,
            auth_service=GHCR_SERVICE,
            image_path=image_path,
            original_host=host,
        )

    if host == LSCR_HOST:
        if not image_path.startswith(f"{LSCR_NAMESPACE}/"):
            image_path = f"{LSCR_NAMESPACE}/{image_path}"
        return RegistryTarget(
            base_url=GHCR_REGISTRY,
            auth_token_url=GHCR_AUTH_URL,
            auth_service=GHCR_SERVICE,
            image_path=image_path,
            original_host=host,
        )

    if host == "quay.io":
        return RegistryTarget(
            base_url="https://quay.io",
            auth_token_url="https://quay.io/v2/auth",
            auth_service="quay.io",
            image_path=image_path,
            original_host=host,
        )

    if host == "gcr.io" or host.endswith(".gcr.io"):
        # GCR has no anonymous token endpoint - skip auth, don't fail
        return RegistryTarget(
            base_url=f"https://{host}",
            auth_token_url=None,
            auth_service=None,
            image_path=image_path,
            original_host=host,
        )

    # Generic registry: {host}/token convention
    return RegistryTarget(
        base_url=f"https://{host}",
        auth_token_url=f"https://{host}/token",
        auth_service=host,
        image_path=image_path,
        original_host=host,
    )
