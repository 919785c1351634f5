"""
Batch processing of the repository table.

Records are handled strictly one after another. Each record gets its own
RecordLogger, passed explicitly through resolution, packaging and
publishing, so log lines carry the record name without any shared state.
A failing record is logged and the batch moves on.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from ..config import RecordLogger, logger as base_logger
from ..domain import PublishedVersionSet, RepositoryDescriptor, Revision
from ..exit_codes import (
    NoRevisionsAvailable,
    PackagingFailed,
    PublishFailed,
    RecordError,
    ResolutionFailed,
    UnsupportedForge,
    UnsupportedLanguage,
)
from .dedup import should_skip
from .resolver import RevisionResolver


class PackagingCollaborator(Protocol):
    def package(self, descriptor: RepositoryDescriptor, revision: Revision,
                log: Optional[logging.LoggerAdapter] = None) -> Path: ...


class PublishingCollaborator(Protocol):
    def publish(self, name: str, version: str, archive_path: Path) -> str: ...


@dataclass
class BatchResult:
    """Record names grouped by outcome."""
    packaged: List[str] = field(default_factory=list)
    published: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        # A record that packaged but failed to publish appears in both lists
        return len(set(self.packaged) | set(self.skipped) | set(self.failed) | set(self.pending))

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'packaged': list(self.packaged),
            'published': list(self.published),
            'skipped': list(self.skipped),
            'failed': list(self.failed),
            'pending': list(self.pending),
        }


def _report(log: logging.LoggerAdapter, level: int, message: str, error: RecordError) -> None:
    if error.output:
        log.error(error.output.strip())
    log.log(level, f"{message}: {error.message}")


class RepositoryBatchDriver:
    """
    Drive resolution, deduplication, packaging and publishing per record.

    Example:
        driver = RepositoryBatchDriver(resolver, packager, registry=published)
        result = driver.run(descriptors, name_filter="foo")
    """

    def __init__(
        self,
        resolver: RevisionResolver,
        packager: Optional[PackagingCollaborator] = None,
        publisher: Optional[PublishingCollaborator] = None,
        registry: Optional[PublishedVersionSet] = None,
        ignore: bool = False,
        publish: bool = False,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize RepositoryBatchDriver.

        Args:
            resolver: Revision resolver
            packager: Builds dependency archives (unused with dry_run)
            publisher: Uploads archives (used only with publish)
            registry: Snapshot of published versions; None disables dedup
            ignore: Never skip already-published versions
            publish: Upload archives after packaging
            dry_run: Stop after the dedup check
            logger: Base logger for record loggers
        """
        self.resolver = resolver
        self.packager = packager
        self.publisher = publisher
        self.registry = registry
        self.ignore = ignore
        self.publish = publish
        self.dry_run = dry_run
        self.logger = logger or base_logger

    def run(
        self,
        descriptors: Iterable[RepositoryDescriptor],
        name_filter: Optional[str] = None
    ) -> BatchResult:
        """
        Process descriptors in order.

        Args:
            descriptors: Repository table rows
            name_filter: Only process the record with this exact name

        Returns:
            BatchResult with every processed record name
        """
        result = BatchResult()

        for descriptor in descriptors:
            if name_filter and descriptor.name != name_filter:
                continue
            try:
                self.process(descriptor, result)
            except Exception as e:
                log = RecordLogger(self.logger, descriptor.name)
                log.error(f"unexpected failure: {e}")
                log.debug("traceback of the unexpected failure", exc_info=True)
                if descriptor.name not in result.failed:
                    result.failed.append(descriptor.name)

        return result

    def process(self, descriptor: RepositoryDescriptor, result: BatchResult) -> None:
        """Run one record through the pipeline, recording its outcome."""
        log = RecordLogger(self.logger, descriptor.name)
        log.info(f"url: {descriptor.url}")

        try:
            revision = self.resolver.resolve(descriptor, log)
        except (UnsupportedForge, ResolutionFailed, NoRevisionsAvailable) as e:
            source = "the latest commit" if descriptor.live else "the latest tag"
            _report(log, logging.WARNING, f"failed to form a revision from {source}", e)
            result.failed.append(descriptor.name)
            return

        log.info(f"version: {revision.version}")
        log.info(f"tarball_url: {revision.tarball_url}")

        if should_skip(descriptor.name, revision.version, self.registry, self.ignore):
            log.info("the latest version is already in the registry; skipping")
            result.skipped.append(descriptor.name)
            return

        if self.dry_run or self.packager is None:
            log.info("dry run; not packaging")
            result.pending.append(descriptor.name)
            return

        try:
            archive = self.packager.package(descriptor, revision, log)
        except UnsupportedLanguage as e:
            _report(log, logging.WARNING, "failed to package the dependencies", e)
            result.failed.append(descriptor.name)
            return
        except PackagingFailed as e:
            _report(log, logging.ERROR, "failed to package the dependencies", e)
            result.failed.append(descriptor.name)
            return

        result.packaged.append(descriptor.name)

        if not self.publish:
            return

        if self.publisher is None:
            log.error("publishing is enabled but no publisher is configured")
            result.failed.append(descriptor.name)
            return

        log.info("publishing the package...")
        try:
            url = self.publisher.publish(descriptor.name, revision.version, archive)
        except PublishFailed as e:
            _report(log, logging.ERROR, "failed to publish the package", e)
            result.failed.append(descriptor.name)
            return

        log.info(f"published: {url}")
        result.published.append(descriptor.name)
