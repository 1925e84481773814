"""Locate the source file implicated by an error."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Awaitable, Callable

from outagex.errors import ExternalServiceError
from outagex.integrations.base import DirectoryItem, RepositoryHandle
from outagex.models import CommitInfo, ErrorEvidence, FileResolution, ResolutionSource

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py")
CONFIG_FILE_PREFIXES = (
    "next.config",
    "tailwind.config",
    "postcss.config",
    "vite.config",
    "jest.config",
    "eslint.config",
    "tsconfig",
    "package.json",
    "README",
)
ENTRY_POINT_NAMES = ("index", "main", "app")
DEFAULT_MAX_DEPTH = 3

_EXT_GROUP = "|".join(ext.lstrip(".") for ext in SOURCE_EXTENSIONS)
STACK_PATTERNS = (
    re.compile(r"\(([^()\s]+?):\d+:\d+\)"),  # at fn (file:line:col)
    re.compile(r"(?:^|\s)(?:at\s+)?([^()\s\"']+?):\d+:\d+"),  # at file:line:col
    re.compile(rf"([^()\s\"']+?\.(?:{_EXT_GROUP}))\b"),  # src/file.ts
)
_URL_PREFIX_RE = re.compile(r"^(?:webpack-internal:///|webpack:///|webpack://|file://|https?://[^/]+/)")
_DIFF_GIT_RE = re.compile(r"^diff --git a/(.+?) b/(.+?)$", re.MULTILINE)
_DIFF_NEW_RE = re.compile(r"^\+\+\+ b/(.+?)$", re.MULTILINE)
_DIFF_OLD_RE = re.compile(r"^--- a/(.+?)$", re.MULTILINE)


def is_source_file(path: str) -> bool:
    return path.lower().endswith(SOURCE_EXTENSIONS)


def clean_stack_path(raw: str) -> str:
    """Strip bundler/URL prefixes and a leading ./ from a stack-frame path."""
    path = _URL_PREFIX_RE.sub("", raw.strip())
    return re.sub(r"^\./", "", path)


def path_from_stack(stack: str) -> str | None:
    """First stack-frame path ending in a known source extension, trying each pattern in turn."""
    for pattern in STACK_PATTERNS:
        for match in pattern.finditer(stack):
            candidate = clean_stack_path(match.group(1))
            if is_source_file(candidate):
                return candidate
    return None


def path_from_diff(diff: str) -> str | None:
    """File path from a unified diff header; the new (b/) side wins over the old (a/) side."""
    match = _DIFF_GIT_RE.search(diff)
    if match:
        return match.group(2)
    match = _DIFF_NEW_RE.search(diff)
    if match:
        return match.group(1)
    match = _DIFF_OLD_RE.search(diff)
    if match:
        return match.group(1)
    return None


@dataclass
class ResolutionContext:
    """Everything the strategies may read; strategies never mutate it."""

    evidence: ErrorEvidence | None = None
    commit: CommitInfo | None = None
    diff: str = ""
    repository: RepositoryHandle | None = None
    name_hint: str | None = None


# --- error-evidence strategies -------------------------------------------------


def from_structured_metadata(ctx: ResolutionContext) -> str | None:
    first = ctx.evidence.first_error if ctx.evidence else None
    if first is None:
        return None
    return (
        first.metadata.get("sourceFile")
        or first.metadata.get("source_file")
        or first.metadata.get("filename")
        or None
    )


def from_error_filename(ctx: ResolutionContext) -> str | None:
    first = ctx.evidence.first_error if ctx.evidence else None
    return first.filename if first and first.filename else None


def from_stack_trace(ctx: ResolutionContext) -> str | None:
    first = ctx.evidence.first_error if ctx.evidence else None
    if first is None or not first.stack:
        return None
    return path_from_stack(first.stack)


# --- commit strategies ---------------------------------------------------------


def from_commit_files(ctx: ResolutionContext) -> str | None:
    if ctx.commit and ctx.commit.files_changed:
        return ctx.commit.files_changed[0]
    return None


def from_diff_header(ctx: ResolutionContext) -> str | None:
    return path_from_diff(ctx.diff) if ctx.diff else None


ExtractionStrategy = Callable[[ResolutionContext], "str | None"]
SearchStrategy = Callable[[ResolutionContext], Awaitable["str | None"]]

EXTRACTION_STRATEGIES: tuple[tuple[ExtractionStrategy, ResolutionSource], ...] = (
    (from_structured_metadata, ResolutionSource.EXTRACTED_FROM_ERROR),
    (from_error_filename, ResolutionSource.EXTRACTED_FROM_ERROR),
    (from_stack_trace, ResolutionSource.EXTRACTED_FROM_ERROR),
    (from_commit_files, ResolutionSource.COMMIT_FALLBACK),
    (from_diff_header, ResolutionSource.COMMIT_FALLBACK),
)


class SourceFileResolver:
    """
    Ordered cascade of strategies for finding the file behind an error.

    Evidence-based strategies (structured fields, stack trace) are trusted
    most and short-circuit without touching the repository. Commit and diff
    fallbacks come next, and only when all of those yield nothing is the
    repository listed and searched.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._max_depth = max_depth
        self._search_strategies: tuple[SearchStrategy, ...] = (
            self.from_root_listing,
            self.from_name_search,
            self.from_entry_point,
        )

    async def resolve(
        self,
        evidence: ErrorEvidence | None,
        commit: CommitInfo | None = None,
        diff: str = "",
        repository: RepositoryHandle | None = None,
    ) -> FileResolution | None:
        """Return the implicated file with the strategy that found it, or None."""
        ctx = ResolutionContext(
            evidence=evidence,
            commit=commit,
            diff=diff or "",
            repository=repository,
            name_hint=_name_hint(evidence),
        )
        for strategy, source in EXTRACTION_STRATEGIES:
            path = strategy(ctx)
            if path:
                resolution = FileResolution(path=path, strategy=strategy.__name__, source=source)
                _log_resolution(resolution)
                return resolution
        return await self._search(ctx)

    async def search_repository(
        self,
        repository: RepositoryHandle,
        name_hint: str | None = None,
    ) -> FileResolution | None:
        """Run only the repository strategies (root listing, name search, entry point)."""
        return await self._search(ResolutionContext(repository=repository, name_hint=name_hint))

    async def _search(self, ctx: ResolutionContext) -> FileResolution | None:
        if ctx.repository is None:
            logger.warning("No file path from error or commit and no repository to search")
            return None
        for strategy in self._search_strategies:
            try:
                path = await strategy(ctx)
            except ExternalServiceError as e:
                logger.warning("Resolver strategy %s failed: %s", strategy.__name__, e)
                continue
            if path:
                resolution = FileResolution(
                    path=path,
                    strategy=strategy.__name__,
                    source=ResolutionSource.REPOSITORY_SEARCH,
                )
                _log_resolution(resolution)
                return resolution
        logger.warning("Could not locate any source file in %s", ctx.repository)
        return None

    # --- repository strategies -------------------------------------------------

    async def from_root_listing(self, ctx: ResolutionContext) -> str | None:
        items = await ctx.repository.list_directory(".")
        for item in items:
            if item.is_file and is_source_file(item.name):
                return item.path
        return None

    async def from_name_search(self, ctx: ResolutionContext) -> str | None:
        if not ctx.name_hint:
            return None
        matches = await self.find_files(ctx.repository, ctx.name_hint)
        return matches[0].path if matches else None

    async def find_files(
        self,
        repository: RepositoryHandle,
        name: str,
        directory: str = ".",
        depth: int = 0,
    ) -> list[DirectoryItem]:
        """Case-insensitive partial name match (either direction), walking at most max_depth levels."""
        if depth >= self._max_depth:
            return []
        try:
            items = await repository.list_directory(directory)
        except ExternalServiceError as e:
            logger.debug("Could not list %s: %s", directory, e)
            return []
        wanted = name.lower()
        results: list[DirectoryItem] = []
        for item in items:
            if item.is_file:
                have = item.name.lower()
                if wanted in have or have in wanted:
                    results.append(item)
            elif item.is_dir:
                results.extend(await self.find_files(repository, name, item.path, depth + 1))
        return results

    async def from_entry_point(self, ctx: ResolutionContext) -> str | None:
        """Framework conventions: app router, pages router, their src/ variants, then root files."""
        repo = ctx.repository
        root = await repo.list_directory(".")
        dirs = {item.name for item in root if item.is_dir}

        if "app" in dirs:
            path = await self._app_router_entry(repo, "app")
            if path:
                return path
        if "pages" in dirs:
            path = await self._pages_router_entry(repo, "pages")
            if path:
                return path
        if "src" in dirs:
            path = await self._app_router_entry(repo, "src/app")
            if path:
                return path
            path = await self._pages_router_entry(repo, "src/pages")
            if path:
                return path
            path = _first_named(await _safe_list(repo, "src"), ENTRY_POINT_NAMES)
            if path:
                return path

        root_sources = [
            item
            for item in root
            if item.is_file
            and is_source_file(item.name)
            and not item.name.startswith(CONFIG_FILE_PREFIXES)
        ]
        path = _first_named(root_sources, ENTRY_POINT_NAMES)
        if path:
            return path
        return root_sources[0].path if root_sources else None

    async def _app_router_entry(self, repo: RepositoryHandle, directory: str) -> str | None:
        files = [f for f in await _safe_list(repo, directory) if f.is_file]
        for name in ("page.tsx", "page.jsx", "page.ts", "page.js", "layout.tsx", "layout.jsx"):
            for f in files:
                if f.name == name:
                    return f.path
        for f in files:
            if is_source_file(f.name):
                return f.path
        return None

    async def _pages_router_entry(self, repo: RepositoryHandle, directory: str) -> str | None:
        return _first_named(await _safe_list(repo, directory), ("index",))


async def _safe_list(repo: RepositoryHandle, directory: str) -> list[DirectoryItem]:
    try:
        return await repo.list_directory(directory)
    except ExternalServiceError as e:
        logger.debug("Could not list %s: %s", directory, e)
        return []


def _first_named(items: list[DirectoryItem], base_names: tuple[str, ...]) -> str | None:
    """First source file whose stem equals one of base_names, honoring base_names order."""
    for base in base_names:
        for item in items:
            if item.is_file and is_source_file(item.name) and PurePosixPath(item.name).stem == base:
                return item.path
    return None


def _name_hint(evidence: ErrorEvidence | None) -> str | None:
    """A file name worth searching for when no usable path was extracted."""
    first = evidence.first_error if evidence else None
    if first is None:
        return None
    for raw in (first.metadata.get("sourceFile"), first.metadata.get("filename"), first.filename, first.url):
        if raw:
            name = PurePosixPath(clean_stack_path(str(raw)).split("?")[0]).name
            if name:
                return name
    return None


def _log_resolution(resolution: FileResolution) -> None:
    if resolution.source == ResolutionSource.EXTRACTED_FROM_ERROR:
        logger.info("Resolved file from error: %s (%s)", resolution.path, resolution.strategy)
    else:
        logger.warning(
            "Resolved file by fallback: %s (%s, %s)",
            resolution.path,
            resolution.strategy,
            resolution.source.value,
            extra={"file_path": resolution.path, "source": resolution.source.value},
        )
