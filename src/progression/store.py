"""
Record store used by the engine.

MatchStore is the interface the engine calls. MemoryStore keeps records in
process; YamlStore persists them in one YAML file guarded by a FileLock.
"""
import copy
import os
import threading
from typing import List, Dict, Optional

import yaml
from filelock import FileLock, Timeout


class StoreError(RuntimeError):
    """The store could not read or write its records."""


class RecordNotFound(KeyError):
    """No record with the requested id."""


def _convert_to_serializable(obj):
    """Convert tuples to lists recursively for YAML serialization."""
    if isinstance(obj, dict):
        return {k: _convert_to_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_convert_to_serializable(item) for item in obj]
    else:
        return obj


def _matches_filter(record: Dict, **filters) -> bool:
    return all(value is None or record.get(key) == value for key, value in filters.items())


class MatchStore:
    """Record-oriented operations the engine needs from persistence."""

    def list_matches(self, tournament_id, category_id=None, round_name=None, status=None) -> List[Dict]:
        raise NotImplementedError

    def get_match(self, match_id) -> Dict:
        raise NotImplementedError

    def update_match(self, match_id, fields: Dict):
        raise NotImplementedError

    def insert_matches(self, matches: List[Dict]):
        raise NotImplementedError

    def list_participants(self, tournament_id, category_id=None) -> List[Dict]:
        raise NotImplementedError

    def update_participant(self, participant_id, fields: Dict):
        raise NotImplementedError

    def get_tournament(self, tournament_id) -> Optional[Dict]:
        raise NotImplementedError

    def get_category(self, category_id) -> Optional[Dict]:
        raise NotImplementedError

    def transaction(self):
        """Context manager that keeps other writers out until it exits; re-entrant."""
        raise NotImplementedError


class MemoryStore(MatchStore):
    """In-process store; records are copied in and out so callers never share state."""

    def __init__(self, data: Optional[Dict] = None):
        self.data = {
            'tournaments': [],
            'categories': [],
            'participants': [],
            'matches': [],
        }
        if data:
            for section, records in data.items():
                self.data[section] = copy.deepcopy(records or [])
        self._lock = threading.RLock()

    def transaction(self):
        return self._lock

    def _load(self) -> Dict:
        return self.data

    def _save(self, data: Dict):
        self.data = data

    def _find(self, data: Dict, section: str, record_id) -> Dict:
        for record in data[section]:
            if record.get('id') == record_id:
                return record
        raise RecordNotFound(f'No {section[:-1]} with id {record_id!r}')

    def list_matches(self, tournament_id, category_id=None, round_name=None, status=None) -> List[Dict]:
        data = self._load()
        return [copy.deepcopy(m) for m in data['matches']
                if _matches_filter(m, tournament_id=tournament_id, category_id=category_id,
                                   round=round_name, status=status)]

    def get_match(self, match_id) -> Dict:
        return copy.deepcopy(self._find(self._load(), 'matches', match_id))

    def update_match(self, match_id, fields: Dict):
        with self._lock:
            data = self._load()
            self._find(data, 'matches', match_id).update(copy.deepcopy(fields))
            self._save(data)

    def insert_matches(self, matches: List[Dict]):
        with self._lock:
            data = self._load()
            data['matches'].extend(copy.deepcopy(matches))
            self._save(data)

    def list_participants(self, tournament_id, category_id=None) -> List[Dict]:
        data = self._load()
        return [copy.deepcopy(p) for p in data['participants']
                if _matches_filter(p, tournament_id=tournament_id, category_id=category_id)]

    def update_participant(self, participant_id, fields: Dict):
        with self._lock:
            data = self._load()
            self._find(data, 'participants', participant_id).update(copy.deepcopy(fields))
            self._save(data)

    def get_tournament(self, tournament_id) -> Optional[Dict]:
        for record in self._load()['tournaments']:
            if record.get('id') == tournament_id:
                return copy.deepcopy(record)
        return None

    def get_category(self, category_id) -> Optional[Dict]:
        for record in self._load()['categories']:
            if record.get('id') == category_id:
                return copy.deepcopy(record)
        return None


class YamlStore(MemoryStore):
    """
    Records persisted in a single YAML file.

    Every read reloads the file and every write rewrites it while holding
    ``<dir>/.lock``, so several processes can share one data directory.
    ``transaction()`` holds that lock across a whole read-modify-write sequence.
    """

    def __init__(self, path: str, lock_timeout: float = 10):
        self.path = path
        self._file_lock = FileLock(os.path.join(os.path.dirname(os.path.abspath(path)), '.lock'),
                                   timeout=lock_timeout)
        super().__init__()
        self._lock = _FileLockAdapter(self._file_lock)

    def _load(self) -> Dict:
        empty = {'tournaments': [], 'categories': [], 'participants': [], 'matches': []}
        if not os.path.exists(self.path):
            return empty
        try:
            with self._file_lock:
                with open(self.path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f)
        except Timeout as e:
            raise StoreError(f'Timed out waiting for lock on {self.path}') from e
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f'Failed to read {self.path}: {e}') from e
        for section in empty:
            empty[section] = (data or {}).get(section) or []
        return empty

    def _save(self, data: Dict):
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                yaml.dump(_convert_to_serializable(data), f, default_flow_style=False)
        except OSError as e:
            raise StoreError(f'Failed to write {self.path}: {e}') from e


class _FileLockAdapter:
    """Turns lock timeouts into StoreError for the write paths."""

    def __init__(self, lock: FileLock):
        self.lock = lock

    def __enter__(self):
        try:
            self.lock.acquire()
        except Timeout as e:
            raise StoreError(f'Timed out waiting for lock {self.lock.lock_file}') from e
        return self

    def __exit__(self, *exc_info):
        self.lock.release()
        return False
