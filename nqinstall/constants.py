"""Installer constants: tracked artifacts, compose services, credential sources."""

from __future__ import annotations

from dataclasses import dataclass

GITHUB_OWNER = "NexusQuantum"
RELEASE_REPO = "installer-NQRust-Analytics"
API_BASE = "https://api.github.com"
REGISTRY_HOST = "ghcr.io"
USER_AGENT = "nqrust-analytics-installer"
GITHUB_ACCEPT = "application/vnd.github+json"

# Checked in order; the first non-blank value wins.
TOKEN_ENV_VARS = ("NQINSTALL_GHCR_TOKEN", "GHCR_TOKEN", "GITHUB_TOKEN")

# Service names as they appear in compose output.
COMPOSE_SERVICES = ("analytics-service", "qdrant", "northwind-db", "analytics-ui")
COMPOSE_FILE_NAMES = ("docker-compose.yaml", "docker-compose.yml", "compose.yaml", "compose.yml")

ENV_FILE_NAME = ".env"
CONFIG_FILE_NAME = "config.yaml"

LOG_BUFFER_CAPACITY = 100
BUILD_PROGRESS_FLOOR = 5.0
DEFAULT_BUILD_PROGRESS_SHARE = 50.0
DEFAULT_UPDATE_TOLERANCE_SECONDS = 5.0

INSTALLER_ASSET_SUFFIX = "_amd64.deb"
CHECKSUM_ASSET_NAME = "SHA256SUMS"


@dataclass(frozen=True)
class TrackedArtifact:
    """A registry-backed image the update check follows."""

    display_name: str
    image: str
    package: str
    current_tag: str

    @property
    def reference(self) -> str:
        return f"{self.image}:{self.current_tag}"


TRACKED_ARTIFACTS = (
    TrackedArtifact(
        display_name="Analytics Service",
        image="ghcr.io/nexusquantum/analytics-service",
        package="analytics-service",
        current_tag="latest",
    ),
    TrackedArtifact(
        display_name="Analytics UI",
        image="ghcr.io/nexusquantum/analytics-ui",
        package="analytics-ui",
        current_tag="latest",
    ),
    TrackedArtifact(
        display_name="Northwind Demo DB",
        image="postgres",
        package="postgres",
        current_tag="16-alpine",
    ),
)
