"""
Loader for buffered ToF recordings.

Each CSV row is one frame:
    session_id, timestamp_ms, z0, z1, ... zN
"""
import logging
import re
from pathlib import Path
from typing import List, Union

import numpy as np
import pandas as pd

from ..core.interfaces import DistanceFrame, SetBuffer

logger = logging.getLogger(__name__)

ZONE_COLUMN_RE = re.compile(r'^z(\d+)$')


def _zone_columns(df: pd.DataFrame) -> List[str]:
    zones = [c for c in df.columns if ZONE_COLUMN_RE.match(str(c))]
    return sorted(zones, key=lambda c: int(ZONE_COLUMN_RE.match(c).group(1)))


class DataLoader:
    def __init__(self, data_dir: Union[str, Path] = "."):
        """Initialize data loader with data directory."""
        self.data_dir = Path(data_dir)

    def load_recording(self, filename: Union[str, Path]) -> List[SetBuffer]:
        """Load a recording CSV into one SetBuffer per session id, in file order."""
        df = pd.read_csv(self.data_dir / filename)
        return self.buffers_from_frame(df)

    def buffers_from_frame(self, df: pd.DataFrame) -> List[SetBuffer]:
        if 'timestamp_ms' not in df.columns:
            raise ValueError("Recording must contain a 'timestamp_ms' column")

        df = df.copy()
        df['timestamp_ms'] = pd.to_numeric(df['timestamp_ms'], errors='coerce')
        dropped = int(df['timestamp_ms'].isna().sum())
        if dropped:
            logger.warning(f"Dropping {dropped} rows without a numeric timestamp_ms")
        df = df.dropna(subset=['timestamp_ms'])

        if 'session_id' not in df.columns:
            df['session_id'] = 0

        zone_cols = _zone_columns(df)
        if not zone_cols:
            raise ValueError("Recording has no zone columns (z0..zN)")

        buffers = []
        for set_number, (session_id, group) in enumerate(
                df.groupby('session_id', sort=False), start=1):
            buffer = SetBuffer(session_id=int(session_id), set_number=set_number)
            values = group[zone_cols].apply(pd.to_numeric, errors='coerce').to_numpy(dtype=float)
            rejected = 0
            for ts, row in zip(group['timestamp_ms'].to_numpy(), values):
                finite = row[np.isfinite(row)]
                frame = DistanceFrame(
                    timestamp_ms=int(ts),
                    zones=tuple(int(v) for v in finite),
                )
                if not buffer.append(frame):
                    rejected += 1
            if rejected:
                logger.warning(f"Session {session_id}: rejected {rejected} out-of-order frames")
            buffers.append(buffer)

        logger.info(f"Loaded {len(buffers)} set buffers")
        return buffers

    def save_buffer(self, buffer: SetBuffer, filename: Union[str, Path]) -> Path:
        """Write a SetBuffer back out in the recording layout."""
        path = self.data_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        matrix = buffer.zone_matrix()
        df = pd.DataFrame(matrix, columns=[f"z{i}" for i in range(matrix.shape[1])])
        df.insert(0, 'timestamp_ms', [f.timestamp_ms for f in buffer.frames])
        df.insert(0, 'session_id', buffer.session_id)
        df.to_csv(path, index=False)
        return path
