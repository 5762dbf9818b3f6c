from __future__ import annotations

from typing import List, Optional, Tuple

from hidgadget.changeset.model import Action, FileChange, FileState, RequestedFileChange, file_change
from hidgadget.changeset.resolver import ChangeSetResolver


class ChangeSet:
    """An ordered batch of requested file changes, applied as one reconciliation."""

    def __init__(self) -> None:
        self.changes: List[FileChange] = []

    def __len__(self) -> int:
        return len(self.changes)

    def add_file_change_struct(self, request: RequestedFileChange) -> str:
        change = FileChange.from_request(request)
        self.changes.append(change)
        return change.effective_key

    def add_file_change(
        self,
        component: str,
        path: str,
        expected_state: FileState,
        expected_content: bytes = b"",
        depends_on: Optional[List[str]] = None,
        description: str = "",
    ) -> str:
        return self.add_file_change_struct(
            file_change(component, path, expected_state, expected_content, depends_on, description)
        )

    def resolver(self) -> ChangeSetResolver:
        return ChangeSetResolver(self.changes)

    def plan(self) -> List[Tuple[FileChange, Action]]:
        """Resolve the batch and report what applying it would do."""
        r = self.resolver()
        r.resolve()
        return r.planned_actions()

    def apply(self) -> None:
        self.resolver().apply()
