"""
Memory store persisted to a compressed pickle snapshot
"""
import gzip
import os
import pickle
from contextlib import ExitStack
from datetime import datetime
from typing import Dict

from config.ev_config import STORE_CONFIG
from src.storage.memory_store import MemoryStore
from src.utils.errors import UpstreamUnavailable
from src.utils.logger import get_logger

logger = get_logger('store')

SNAPSHOT_FORMAT = 1


class FileStore(MemoryStore):
    """Loads its snapshot on ``open()``, writes it on ``flush()`` and ``close()``"""

    def __init__(self, db_path: str = None, lock_stripes: int = None):
        super().__init__(lock_stripes)
        self.db_path = db_path or STORE_CONFIG['file_path']

    def snapshot_exists(self) -> bool:
        return os.path.exists(self.db_path)

    def open(self) -> 'FileStore':
        if self.snapshot_exists():
            try:
                with gzip.open(self.db_path, 'rb') as f:
                    data = pickle.load(f)
            except (OSError, EOFError, pickle.UnpicklingError) as e:
                raise UpstreamUnavailable(f"Cannot read store snapshot {self.db_path}: {e}") from e

            if data.get('format') != SNAPSHOT_FORMAT:
                raise UpstreamUnavailable(f"Unsupported store snapshot format in {self.db_path}: {data.get('format')}")
            self._import(data)
            logger.info(f"Loaded store snapshot from {self.db_path} "
                        f"({len(self._segments)} crowd cells, {len(self._users)} users)")
        return super().open()

    def flush(self):
        """Write a consistent snapshot of the current contents"""
        self._check_open()
        with ExitStack() as stack:
            for lock in self._locks:
                stack.enter_context(lock)
            data: Dict = self._export()

        data['format'] = SNAPSHOT_FORMAT
        data['saved_at'] = datetime.now().isoformat()

        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.db_path}.tmp"
        try:
            with gzip.open(tmp_path, 'wb') as f:
                pickle.dump(data, f, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(tmp_path, self.db_path)
        except OSError as e:
            raise UpstreamUnavailable(f"Cannot write store snapshot {self.db_path}: {e}") from e
        logger.debug(f"Store snapshot saved to {self.db_path}")

    def close(self):
        if self.is_open:
            self.flush()
        super().close()
