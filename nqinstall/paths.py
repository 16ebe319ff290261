"""Locate the install root and the files the wizard checks for."""

from __future__ import annotations

import logging
from pathlib import Path

from .constants import COMPOSE_FILE_NAMES

logger = logging.getLogger(__name__)

# A source checkout also counts as a project root.
_ROOT_MARKERS = (*COMPOSE_FILE_NAMES, "pyproject.toml")

COMPOSE_TEMPLATE = """\
services:
  northwind-db:
    image: postgres:16-alpine
    restart: unless-stopped
    environment:
      POSTGRES_USER: ${NORTHWIND_DB_USER:-demo}
      POSTGRES_PASSWORD: ${NORTHWIND_DB_PASSWORD:-demo}
      POSTGRES_DB: northwind
    volumes:
      - northwind-data:/var/lib/postgresql/data

  qdrant:
    image: qdrant/qdrant:v1.11.0
    restart: unless-stopped
    expose:
      - 6333
      - 6334
    volumes:
      - qdrant-data:/qdrant/storage

  analytics-service:
    image: ghcr.io/nexusquantum/analytics-service:latest
    restart: unless-stopped
    env_file:
      - .env
    environment:
      ANALYTICS_AI_SERVICE_PORT: ${ANALYTICS_AI_SERVICE_PORT}
      QDRANT_HOST: qdrant
    ports:
      - ${AI_SERVICE_FORWARD_PORT}:${ANALYTICS_AI_SERVICE_PORT}
    volumes:
      - ./config.yaml:/app/config.yaml:ro
    depends_on:
      - qdrant

  analytics-ui:
    image: ghcr.io/nexusquantum/analytics-ui:latest
    restart: unless-stopped
    env_file:
      - .env
    ports:
      - ${HOST_PORT}:3000
    depends_on:
      - analytics-service
      - northwind-db

volumes:
  northwind-data:
  qdrant-data:
"""


def project_root(start: Path | None = None) -> Path:
    """Nearest directory at or above ``start`` holding a compose file.

    Falls back to ``start`` itself when nothing is found.
    """
    origin = (start or Path.cwd()).resolve()
    for candidate in (origin, *origin.parents):
        if any((candidate / name).exists() for name in _ROOT_MARKERS):
            return candidate
    return origin


def find_file(name: str, root: Path | None = None) -> bool:
    base = root if root is not None else project_root()
    return (base / name).is_file()


def find_compose_file(root: Path) -> Path | None:
    for name in COMPOSE_FILE_NAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def ensure_compose_bundle(root: Path) -> Path:
    """Write the bundled compose file unless one already exists."""
    existing = find_compose_file(root)
    if existing is not None:
        return existing
    root.mkdir(parents=True, exist_ok=True)
    path = root / COMPOSE_FILE_NAMES[0]
    path.write_text(COMPOSE_TEMPLATE)
    logger.info("Scaffolded %s", path)
    return path
