"""
Audit trail for DTR uploads and record changes.

Every import attempt is appended to ``{component}_uploads.jsonl`` with its row
counts; record edits go to ``{component}_changes.jsonl``. Hashes of files that
imported successfully are kept in ``{component}_file_hashes.json`` so a
re-upload of the same workbook can be flagged.
"""
import json
import hashlib
from pathlib import Path
from typing import Dict, List, Any, Iterator, Optional, Union
from datetime import datetime, timedelta

from .config import settings
from .utils import atomic_write_json

class AuditLogger:
    def __init__(self, component: str, data_dir: Optional[Union[str, Path]] = None):
        self.component = component
        self.audit_dir = Path(data_dir or settings.DATA_DIR) / "audit"
        self.audit_dir.mkdir(parents=True, exist_ok=True)

        self.uploads_log = self.audit_dir / f"{component}_uploads.jsonl"
        self.changes_log = self.audit_dir / f"{component}_changes.jsonl"
        self.hashes_file = self.audit_dir / f"{component}_file_hashes.json"

    @staticmethod
    def calculate_file_hash(file_path: Union[str, Path]) -> str:
        """MD5 of the file contents."""
        md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                md5.update(chunk)
        return md5.hexdigest()

    def _append(self, path: Path, entry: Dict[str, Any]):
        entry = {"timestamp": datetime.now().isoformat(), "component": self.component, **entry}
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    @staticmethod
    def _entries(path: Path) -> Iterator[Dict[str, Any]]:
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    continue

    def log_upload(
        self,
        entity_type: str,
        batch_id: Optional[Any],
        file_hash: str,
        total_rows: int,
        processed_rows: int,
        error_rows: int,
        success: bool,
        user_id: Optional[Any] = None,
        filename: Optional[str] = None,
        period_id: Optional[Any] = None,
        error_message: Optional[str] = None
    ):
        """Record one import attempt; a successful one also registers the file hash."""
        self._append(self.uploads_log, {
            "entity_type": entity_type,
            "batch_id": batch_id,
            "period_id": period_id,
            "file_hash": file_hash,
            "filename": filename,
            "total_rows": total_rows,
            "processed_rows": processed_rows,
            "error_rows": error_rows,
            "success": success,
            "user_id": user_id,
            "error_message": error_message,
        })
        if success:
            hashes = self._load_hashes()
            hashes[file_hash] = {
                "batch_id": batch_id,
                "entity_type": entity_type,
                "period_id": period_id,
                "timestamp": datetime.now().isoformat(),
            }
            atomic_write_json(str(self.hashes_file), hashes)

    def log_data_change(self, entity_type: str, operation: str, entity_id: Any,
                        changes: Dict[str, Any], user_id: Optional[Any] = None):
        # operation: create / update / delete
        self._append(self.changes_log, {
            "entity_type": entity_type,
            "operation": operation,
            "entity_id": str(entity_id),
            "changes": changes,
            "user_id": user_id,
        })

    def is_duplicate_upload(self, file_hash: str) -> bool:
        return file_hash in self._load_hashes()

    def _load_hashes(self) -> Dict[str, Any]:
        if not self.hashes_file.exists():
            return {}
        try:
            return json.loads(self.hashes_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}

    def get_upload_history(self, days: int = 30, entity_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Upload attempts of the last ``days`` days, newest first."""
        cutoff = datetime.now() - timedelta(days=days)
        history = []
        for entry in self._entries(self.uploads_log):
            try:
                logged_at = datetime.fromisoformat(entry["timestamp"])
            except (KeyError, ValueError):
                continue
            if logged_at < cutoff:
                continue
            if entity_type is None or entry.get("entity_type") == entity_type:
                history.append(entry)
        history.sort(key=lambda e: e["timestamp"], reverse=True)
        return history

    def get_change_history(self, entity_type: str, entity_id: Any) -> List[Dict[str, Any]]:
        changes = [
            e for e in self._entries(self.changes_log)
            if e.get("entity_type") == entity_type and e.get("entity_id") == str(entity_id)
        ]
        changes.sort(key=lambda e: e["timestamp"], reverse=True)
        return changes
