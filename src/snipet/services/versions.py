from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from snipet.core.errors import ConflictError, StoreError
from snipet.db.filters import Eq
from snipet.db.store import RecordStore
from snipet.services.diff import DiffLine, diff_lines
from snipet.services.records import (
    IMMUTABLE_SNIPPET_FIELDS,
    Snippet,
    SnippetChanges,
    SnippetVersion,
    parse_input,
)

logger = logging.getLogger(__name__)

VERSIONS = "snippet_versions"


@dataclass(frozen=True)
class TimelineEntry:
    version: SnippetVersion
    inherited: bool = False


class VersionHistoryEngine:
    """Snapshot-before-write editing and fork-aware version timelines.

    A snapshot is only taken when the code changes. The snapshot is written
    first; the snippet update runs only once it has succeeded, and the update
    is conditional on the snippet's ``updated`` stamp still matching the state
    the caller read. If that conditional update fails the snapshot is removed
    again, so the store never keeps a snapshot without its edit or an edit
    without its snapshot.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def revise_snippet(
        self,
        snippet_id: str,
        prior_state: Snippet,
        new_fields: SnippetChanges | Mapping[str, Any],
    ) -> Snippet:
        revision = parse_input(SnippetChanges, new_fields, immutable=IMMUTABLE_SNIPPET_FIELDS)
        changes = revision.changes()

        current = await self._store.get_one("snippets", snippet_id)
        if current["updated"] != prior_state.updated:
            raise ConflictError("This snippet was changed by someone else. Reload it and try again.")

        snapshot: Dict[str, Any] | None = None
        if "code" in changes and changes["code"] != prior_state.code:
            snapshot = await self._store.create(
                VERSIONS,
                {
                    "snippet": snippet_id,
                    "code": prior_state.code,
                    "language": prior_state.language,
                    "description": prior_state.description,
                    "author": prior_state.author,
                },
            )
            logger.info("snapshotted snippet %s as version %s", snippet_id, snapshot["id"])

        try:
            updated = await self._store.update(
                "snippets", snippet_id, changes, expected_updated=prior_state.updated
            )
        except BaseException:
            if snapshot is not None:
                await self._discard_snapshot(snapshot["id"])
            raise
        return Snippet.from_record(updated)

    async def list_versions(self, snippet_id: str) -> List[SnippetVersion]:
        records = await self._store.get_full_list(
            VERSIONS, filter=Eq("snippet", snippet_id), sort="-created", expand=("author",)
        )
        return [SnippetVersion.from_record(r) for r in records]

    async def get_version_timeline(
        self, snippet: Snippet, viewer_id: Optional[str] = None
    ) -> List[TimelineEntry]:
        entries = [TimelineEntry(v) for v in await self.list_versions(snippet.id)]
        if snippet.forked_from:
            try:
                parent = Snippet.from_record(await self._store.get_one("snippets", snippet.forked_from))
                inherited = await self.list_versions(parent.id)
            except StoreError as exc:
                logger.warning(
                    "could not load versions of %s (fork parent of %s): %s",
                    snippet.forked_from,
                    snippet.id,
                    exc.message,
                )
            else:
                if self.can_read_parent(parent, viewer_id):
                    entries.extend(TimelineEntry(v, inherited=True) for v in inherited)
                else:
                    logger.info("skipping history of private fork parent %s", parent.id)
        # Only one fork level is merged; grandparent history stays out.
        entries.sort(key=lambda e: (e.version.created, e.version.id), reverse=True)
        return entries

    async def get_version(self, version_id: str) -> SnippetVersion:
        return SnippetVersion.from_record(await self._store.get_one(VERSIONS, version_id, expand=("author",)))

    @staticmethod
    def can_read_parent(parent: Snippet, viewer_id: Optional[str]) -> bool:
        return parent.is_public or (viewer_id is not None and parent.author == viewer_id)

    def diff_against_current(self, snippet: Snippet, version: SnippetVersion) -> List[DiffLine]:
        return diff_lines(version.code, snippet.code)

    async def _discard_snapshot(self, version_id: str) -> None:
        try:
            await self._store.delete(VERSIONS, version_id)
        except StoreError:
            logger.exception("failed to discard snapshot %s after a rejected update", version_id)
