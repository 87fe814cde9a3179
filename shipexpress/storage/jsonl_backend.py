"""
APPEND-ONLY JSON LINES STORE

Purpose:
- Durable variant of the in-process store
- Every committed write is appended to one log file; nothing is overwritten
- State is rebuilt by replaying the log at startup

Log format (one JSON object per line):
{"seq": 17, "timestamp": "...", "table": "shipments", "op": "UPDATE",
 "record": {...}, "idempotency_key": "..."}

Shipment and issue lines carry the full record after the write, so replay
is a plain overwrite in sequence order.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from shipexpress import config
from shipexpress.realtime.event_bus import DELETE, EventBus
from shipexpress.storage.memory_backend import MemoryBackend

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "shipexpress.jsonl"


class JsonlBackend(MemoryBackend):

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(bus=bus, clock=clock)
        self.data_dir = Path(data_dir or config.DATA_DIR)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_path = self.data_dir / LOG_FILE_NAME
        self._seq = 0
        self._replaying = False
        self._replay()

    # ──────────────────────────────────────────────────────
    # Writer
    # ──────────────────────────────────────────────────────

    def _record_mutation(
        self,
        table: str,
        op: str,
        record: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> None:
        if self._replaying:
            return

        self._seq += 1
        line = {
            "seq": self._seq,
            "timestamp": self._now(),
            "table": table,
            "op": op,
            "record": record,
        }
        if idempotency_key:
            line["idempotency_key"] = idempotency_key

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(line, ensure_ascii=False) + "\n")

    # ──────────────────────────────────────────────────────
    # Replay
    # ──────────────────────────────────────────────────────

    def _replay(self) -> None:
        if not self.log_path.exists():
            return

        applied = 0
        self._replaying = True
        try:
            with open(self.log_path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError:
                        logger.error(f"Skipping malformed log line {line_no} in {self.log_path}")
                        continue
                    self._apply(entry)
                    self._seq = max(self._seq, entry.get("seq", 0))
                    applied += 1
        finally:
            self._replaying = False

        logger.info(f"Replayed {applied} entries from {self.log_path}")

    def _apply(self, entry: Dict[str, Any]) -> None:
        table = entry["table"]
        record = entry["record"]

        if table == "shipments":
            self._shipments[record["id"]] = record
            if entry.get("idempotency_key"):
                self._last_keys[record["id"]] = entry["idempotency_key"]
        elif table == "notifications":
            if entry["op"] == DELETE:
                self._notifications.pop(record["id"], None)
            else:
                self._notifications[record["id"]] = record
        elif table == "messages":
            self._messages.append(record)
        elif table == "issues":
            self._issues[record["id"]] = record
        elif table == "profiles":
            self._profiles[record["id"]] = record
        else:
            logger.warning(f"Unknown table '{table}' in log entry {entry.get('seq')}")
