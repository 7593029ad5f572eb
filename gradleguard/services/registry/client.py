"""
Maven Registry Client.

Checks whether dependency coordinates exist in a local repository tree or
in remote Maven repositories. Only the ``.pom`` of each coordinate is
checked; no metadata is downloaded and no transitive graph is built.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...core.config import RegistryConfig, get_config
from ...core.exceptions import RegistryError
from ...core.logging import get_logger
from ...models.descriptor import DependencyDeclaration, DependencyKind, RepositoryDeclaration
from ...models.findings import DependencyStatus

logger = get_logger(__name__)

LOCAL_REPOSITORY = "local"


def pom_path(group: str, artifact: str, version: str) -> str:
    """Repository-relative path of a coordinate's POM."""
    return f"{group.replace('.', '/')}/{artifact}/{version}/{artifact}-{version}.pom"


def is_checkable(dependency: DependencyDeclaration) -> bool:
    """Module coordinates with a concrete version."""
    return (
        dependency.kind in (DependencyKind.MODULE, DependencyKind.PLATFORM)
        and dependency.group is not None
        and dependency.artifact is not None
        and dependency.version is not None
        and "$" not in dependency.version
        and "+" not in dependency.version
        and not dependency.version.startswith(("[", "("))
    )


class MavenRegistryClient:
    """Looks coordinates up in Maven repositories.

    Repositories declared in the descriptor are tried first, then the
    configured defaults. Requests share one ``httpx.AsyncClient`` and are
    bounded by a semaphore.
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or get_config().registry
        self._transport = transport

    def repository_urls(self, declared: list[RepositoryDeclaration] | None = None) -> list[str]:
        """Ordered, de-duplicated remote repository base URLs."""
        urls: list[str] = []
        for url in [*(repo.url for repo in declared or []), *self.config.repositories]:
            if url and url.startswith(("http://", "https://")):
                normalized = url.rstrip("/")
                if normalized not in urls:
                    urls.append(normalized)
        return urls

    async def check(
        self,
        dependencies: list[DependencyDeclaration],
        declared: list[RepositoryDeclaration] | None = None,
    ) -> list[DependencyStatus]:
        """Check every checkable coordinate once.

        Args:
            dependencies: Declared dependencies.
            declared: Repositories declared by the descriptor.

        Returns:
            One status per distinct coordinate, in declaration order.
        """
        coordinates: dict[str, DependencyDeclaration] = {}
        for dependency in dependencies:
            if is_checkable(dependency):
                coordinates.setdefault(dependency.coordinate, dependency)

        urls = [] if self.config.offline else self.repository_urls(declared)
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async with httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            transport=self._transport,
            follow_redirects=True,
        ) as client:

            async def bounded(dependency: DependencyDeclaration) -> DependencyStatus:
                async with semaphore:
                    return await self._check_one(client, dependency, urls)

            statuses = await asyncio.gather(*(bounded(dep) for dep in coordinates.values()))

        logger.info(
            "Registry check finished",
            checked=len(statuses),
            missing=sum(1 for status in statuses if status.resolvable is False),
            errors=sum(1 for status in statuses if status.resolvable is None),
        )
        return list(statuses)

    async def _check_one(
        self,
        client: httpx.AsyncClient,
        dependency: DependencyDeclaration,
        urls: list[str],
    ) -> DependencyStatus:
        relative = pom_path(str(dependency.group), str(dependency.artifact), str(dependency.version))
        coordinate = dependency.coordinate

        if self.config.local_repository is not None:
            if (Path(self.config.local_repository).expanduser() / relative).is_file():
                return DependencyStatus(coordinate=coordinate, resolvable=True, repository=LOCAL_REPOSITORY)

        errors: list[str] = []
        for base in urls:
            try:
                if await self._head(client, f"{base}/{relative}", base, coordinate):
                    logger.debug("Coordinate found", coordinate=coordinate, repository=base)
                    return DependencyStatus(coordinate=coordinate, resolvable=True, repository=base)
            except RegistryError as e:
                logger.warning("Repository lookup failed", coordinate=coordinate, repository=base, error=str(e))
                errors.append(f"{base}: {e.message}")

        if errors:
            # A repository that failed to answer might hold the artifact.
            return DependencyStatus(coordinate=coordinate, resolvable=None, error="; ".join(errors))
        if not urls and self.config.local_repository is None:
            return DependencyStatus(coordinate=coordinate, resolvable=None, error="no repository configured")
        return DependencyStatus(coordinate=coordinate, resolvable=False)

    async def _head(self, client: httpx.AsyncClient, url: str, base: str, coordinate: str) -> bool:
        """HEAD a POM, retrying transport errors with exponential backoff.

        Returns:
            True on 200, False on 404/410.

        Raises:
            RegistryError: When retries are exhausted or the server answers
                with an unexpected status.
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_retries),
                wait=wait_exponential(multiplier=self.config.backoff_seconds, max=30),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await client.head(url)
        except httpx.TransportError as e:
            raise RegistryError(
                message=f"transport error: {e.__class__.__name__}",
                operation="head",
                retryable=True,
                repository=base,
                coordinate=coordinate,
                cause=e,
            ) from e

        if response.status_code == 200:
            return True
        if response.status_code in (404, 410):
            return False
        raise RegistryError(
            message=f"unexpected status {response.status_code}",
            operation="head",
            retryable=response.status_code >= 500,
            repository=base,
            coordinate=coordinate,
        )
