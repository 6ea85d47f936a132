"""Filesystem store for recorded workflows and execution reports."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path

import structlog

from replaylens.core.files import write_json_atomic
from replaylens.core.types import ExecutionReport, Workflow

logger = structlog.get_logger(__name__)

_DEFAULT_STORE_DIR = os.path.join(os.path.expanduser("~"), ".replaylens", "workflows")


class WorkflowStore:
    """
    Filesystem store for workflow records.

    Directory layout::

        {store_dir}/
            index.json              # workflow registry
            {wf_id}.json            # Workflow record
            reports/{wf_id}_*.json  # ExecutionReport exports
    """

    def __init__(self, store_dir: str | None = None) -> None:
        self._dir = Path(store_dir or _DEFAULT_STORE_DIR)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _index_path(self) -> Path:
        return self._dir / "index.json"

    def _load_index(self) -> dict:
        try:
            with open(self._index_path, encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return {}

    def _save_index(self, index: dict) -> None:
        write_json_atomic(self._index_path, index)

    def _workflow_path(self, workflow_id: str) -> Path:
        return self._dir / f"{workflow_id}.json"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def save(self, workflow: Workflow) -> str:
        """Persist ``workflow`` and register it in the index. Returns the record path."""
        if not workflow.id:
            raise ValueError("Workflow id is required")
        path = write_json_atomic(self._workflow_path(workflow.id), workflow.to_dict())

        index = self._load_index()
        index[workflow.id] = {
            "name": workflow.name,
            "platform": workflow.platform,
            "type": workflow.type,
            "created_at": workflow.created_at,
            "action_count": len(workflow.actions),
            "path": path,
        }
        self._save_index(index)
        logger.info("workflow saved", workflow_id=workflow.id, actions=len(workflow.actions))
        return path

    def load(self, workflow_id: str) -> Workflow | None:
        """Load a workflow by ID. Returns None if it is missing or unreadable."""
        path = self._workflow_path(workflow_id)
        if not path.exists():
            return None
        try:
            d = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("workflow unreadable", workflow_id=workflow_id, error=str(exc))
            return None
        return Workflow.from_dict(d)

    def delete(self, workflow_id: str) -> bool:
        """Delete a workflow from the store. Returns True if it existed."""
        index = self._load_index()
        if workflow_id not in index:
            return False

        try:
            self._workflow_path(workflow_id).unlink()
        except FileNotFoundError:
            pass

        del index[workflow_id]
        self._save_index(index)
        return True

    def export(self, workflow_id: str, dest_path: str) -> str:
        """
        Copy the workflow record to dest_path.

        Returns the absolute destination path.
        """
        src = self._workflow_path(workflow_id)
        if not src.exists():
            raise FileNotFoundError(f"Workflow {workflow_id!r} not found in store")
        shutil.copy2(src, dest_path)
        return str(os.path.abspath(dest_path))

    def list_workflows(self) -> list[dict]:
        """Return a list of index entries for all stored workflows."""
        index = self._load_index()
        return [{"workflow_id": wf_id, **entry} for wf_id, entry in index.items()]

    def save_report(self, report: ExecutionReport, dest_path: str | None = None) -> str:
        """
        Write ``report`` as JSON.

        Without ``dest_path`` the report lands in ``reports/`` named after
        the workflow and its start time. Returns the absolute path.
        """
        if dest_path is None:
            stamp = "".join(c for c in report.start_time if c.isalnum())[:15] or "report"
            dest = self._dir / "reports" / f"{report.workflow_id}_{stamp}.json"
        else:
            dest = Path(dest_path)
        path = write_json_atomic(dest, report.to_dict())
        return str(os.path.abspath(path))
