from typing import Any, Iterable, List, NamedTuple

import threading

from order_book import Side


class ChangeRecord(NamedTuple):
    # raw feed values, parsed when the buffer is drained
    side: Side
    price: Any
    size: Any


class UpdateBuffer:
    def __init__(self, side: Side) -> None:
        self.side = side
        self._lock = threading.Lock()
        self._records: List[ChangeRecord] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def append(self, record: ChangeRecord):
        if record.side is not self.side:
            raise ValueError(f"{record.side.value} change queued on the {self.side.value} buffer")
        with self._lock:
            self._records.append(record)

    def extend(self, records: Iterable[ChangeRecord]):
        for record in records:
            self.append(record)

    def drain(self) -> List[ChangeRecord]:
        with self._lock:
            records, self._records = self._records, []
        return records
