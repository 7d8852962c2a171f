import json
import logging
import os
import threading
import time
from datetime import date, datetime, timezone
from pathlib import Path
from typing import List, Optional

from voice_input.config import cfg
from voice_input.models import LogEntry

logger = logging.getLogger(__name__)


def default_log_dir() -> Path:
    if cfg.data_dir:
        base = Path(os.path.expandvars(cfg.data_dir))
    else:
        base = Path.home() / ".local" / "share"
    return base / "voice-input" / "logs"


class TranscriptLog:
    """Transcription history, one JSON array file per UTC day (YYYY-MM-DD.json)."""

    def __init__(self, log_dir: Optional[Path] = None):
        self.log_dir = Path(log_dir) if log_dir is not None else default_log_dir()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.lock = threading.Lock()
        self._last_id_ms = 0

    def _generate_id(self) -> str:
        now_ms = int(time.time() * 1000)
        # Keep ids unique when entries land in the same millisecond
        if now_ms <= self._last_id_ms:
            now_ms = self._last_id_ms + 1
        self._last_id_ms = now_ms
        return f"{now_ms:x}"

    def _path_for(self, day: date) -> Path:
        return self.log_dir / f"{day.strftime('%Y-%m-%d')}.json"

    def _log_files(self) -> List[Path]:
        return sorted(self.log_dir.glob("*.json"), reverse=True)

    def _read(self, path: Path) -> List[LogEntry]:
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return [LogEntry.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Skipping unreadable log file %s: %s", path, e)
            return []

    def _write(self, path: Path, entries: List[LogEntry]):
        content = json.dumps([e.to_dict() for e in entries], ensure_ascii=False, indent=2)
        path.write_text(content, encoding="utf-8")

    def append(self, entry: LogEntry) -> LogEntry:
        with self.lock:
            path = self._path_for(entry.timestamp.astimezone(timezone.utc).date())
            entries = self._read(path)
            entries.append(entry)
            self._write(path, entries)
        logger.info("Added log entry: %s", entry.id)
        return entry

    def add_entry(
        self,
        raw_text: str,
        refined_text: Optional[str] = None,
        audio_duration_secs: Optional[float] = None,
        llm_used: bool = False,
        prompt_preset: Optional[str] = None,
    ) -> LogEntry:
        with self.lock:
            entry_id = self._generate_id()
        entry = LogEntry(
            id=entry_id,
            timestamp=datetime.now(timezone.utc),
            raw_text=raw_text,
            refined_text=refined_text,
            audio_duration_secs=audio_duration_secs,
            llm_used=llm_used,
            prompt_preset=prompt_preset,
        )
        return self.append(entry)

    def get_logs_for_date(self, year: int, month: int, day: int) -> List[LogEntry]:
        try:
            target = date(year, month, day)
        except ValueError:
            return []
        with self.lock:
            return self._read(self._path_for(target))

    def get_recent_logs(self, limit: int = 50) -> List[LogEntry]:
        """Newest entries first, across all days."""
        collected: List[LogEntry] = []
        with self.lock:
            for path in self._log_files():
                if len(collected) >= limit:
                    break
                collected.extend(self._read(path))
        collected.sort(key=lambda e: e.timestamp, reverse=True)
        return collected[:limit]

    def get_available_dates(self) -> List[str]:
        with self.lock:
            return [p.stem for p in self._log_files()]

    def delete_entry(self, entry_id: str) -> bool:
        with self.lock:
            for path in self._log_files():
                entries = self._read(path)
                remaining = [e for e in entries if e.id != entry_id]
                if len(remaining) < len(entries):
                    self._write(path, remaining)
                    logger.info("Deleted log entry: %s", entry_id)
                    return True
        return False

    def delete_all_entries(self) -> int:
        deleted = 0
        with self.lock:
            for path in self._log_files():
                deleted += len(self._read(path))
                path.unlink()
        logger.info("Deleted all log entries: %d entries", deleted)
        return deleted
