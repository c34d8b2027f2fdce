"""
Record Journal - Append-only JSONL streams joined by trace id
"""
import json
from pathlib import Path
from typing import Callable, Iterator, List, Set, TypeVar, Union

from loguru import logger

from core.errors import InvalidMarketDataError

from ..models.records import DecisionRecord, ExecutionRecord, ResolutionRecord, PositionSnapshot

T = TypeVar("T")


class Journal:
    """
    Four independent streams under one data directory:

    - decisions.jsonl   one DecisionRecord per analyzed market (bets and skips)
    - trades.jsonl      one ExecutionRecord per dispatch attempt
    - resolutions.jsonl at most one ResolutionRecord per trace id
    - snapshots.jsonl   mark-to-market PositionSnapshots

    Each record is written as a single line after its outcome is known.
    """

    DECISIONS = "decisions.jsonl"
    TRADES = "trades.jsonl"
    RESOLUTIONS = "resolutions.jsonl"
    SNAPSHOTS = "snapshots.jsonl"

    def __init__(self, data_dir: Union[str, Path] = "data"):
        self.data_dir = Path(data_dir)

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _append(self, name: str, record: dict):
        self.data_dir.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record, default=str)
        with open(self._path(name), 'a', encoding='utf-8') as f:
            f.write(line + "\n")
            f.flush()

    def _read(self, name: str, parse: Callable[[dict], T]) -> List[T]:
        path = self._path(name)
        if not path.exists():
            return []
        return list(self._iter(path, parse))

    def _iter(self, path: Path, parse: Callable[[dict], T]) -> Iterator[T]:
        with open(path, 'r', encoding='utf-8') as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield parse(json.loads(line))
                except (ValueError, KeyError, TypeError, InvalidMarketDataError) as e:
                    logger.warning(f"Skipping bad record {path.name}:{lineno}: {e}")

    # Writers

    def append_decision(self, decision: DecisionRecord):
        self._append(self.DECISIONS, decision.to_dict())

    def append_execution(self, execution: ExecutionRecord):
        self._append(self.TRADES, execution.to_dict())

    def append_resolution(self, resolution: ResolutionRecord):
        self._append(self.RESOLUTIONS, resolution.to_dict())

    def append_snapshot(self, snapshot: PositionSnapshot):
        self._append(self.SNAPSHOTS, snapshot.to_dict())

    # Readers

    def read_decisions(self) -> List[DecisionRecord]:
        return self._read(self.DECISIONS, DecisionRecord.from_dict)

    def read_executions(self) -> List[ExecutionRecord]:
        return self._read(self.TRADES, ExecutionRecord.from_dict)

    def read_resolutions(self) -> List[ResolutionRecord]:
        return self._read(self.RESOLUTIONS, ResolutionRecord.from_dict)

    def read_snapshots(self) -> List[PositionSnapshot]:
        return self._read(self.SNAPSHOTS, PositionSnapshot.from_dict)

    def resolved_trace_ids(self) -> Set[str]:
        return {r.trace_id for r in self.read_resolutions()}
