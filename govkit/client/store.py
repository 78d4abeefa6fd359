"""
Proposal Store

Remembers which proposal was created for which description on which chain,
so a restarted driver finds its proposal instead of submitting it again.

JSON file layout:

    {
      "31337": {
        "0x<descriptionHash>": "<proposalId>"
      }
    }

Proposal ids are written as decimal strings; they do not fit in a JSON
number for most readers.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


def _hash_key(description_hash: Union[bytes, str]) -> str:
    if isinstance(description_hash, bytes):
        return "0x" + description_hash.hex()
    return description_hash.lower()


class ProposalStore(ABC):
    """Maps (chain id, description hash) to a proposal id."""

    @abstractmethod
    def record(self, chain_id: int, description_hash: Union[bytes, str], proposal_id: int) -> None:
        ...

    @abstractmethod
    def lookup(self, chain_id: int, description_hash: Union[bytes, str]) -> Optional[int]:
        ...

    @abstractmethod
    def proposals(self, chain_id: int) -> Dict[str, int]:
        """All recorded proposals of a chain, keyed by description hash."""


class InMemoryProposalStore(ProposalStore):

    def __init__(self):
        self._data: Dict[str, Dict[str, int]] = {}
        self._lock = threading.Lock()

    def record(self, chain_id: int, description_hash: Union[bytes, str], proposal_id: int) -> None:
        with self._lock:
            self._data.setdefault(str(chain_id), {})[_hash_key(description_hash)] = proposal_id

    def lookup(self, chain_id: int, description_hash: Union[bytes, str]) -> Optional[int]:
        return self._data.get(str(chain_id), {}).get(_hash_key(description_hash))

    def proposals(self, chain_id: int) -> Dict[str, int]:
        return dict(self._data.get(str(chain_id), {}))


class JsonFileProposalStore(ProposalStore):
    """
    File-backed store. Every write replaces the file atomically, so a crash
    leaves either the previous or the new content, never a partial file.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, int]]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Unreadable proposal file {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Proposal file {self.path}: top level must be an object")
        data: Dict[str, Dict[str, int]] = {}
        for chain_id, entries in raw.items():
            if not str(chain_id).isdigit() or not isinstance(entries, dict):
                raise ConfigurationError(
                    f"Proposal file {self.path}: bad entry for chain {chain_id!r}"
                )
            chain: Dict[str, int] = {}
            for desc_hash, proposal_id in entries.items():
                try:
                    chain[desc_hash.lower()] = int(proposal_id)
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(
                        f"Proposal file {self.path}: bad proposal id {proposal_id!r}"
                    ) from e
            data[str(chain_id)] = chain
        return data

    def _write(self, data: Dict[str, Dict[str, int]]) -> None:
        serialised = {
            chain_id: {h: str(pid) for h, pid in entries.items()}
            for chain_id, entries in data.items()
        }
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(serialised, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def record(self, chain_id: int, description_hash: Union[bytes, str], proposal_id: int) -> None:
        with self._lock:
            data = self._load()
            data.setdefault(str(chain_id), {})[_hash_key(description_hash)] = proposal_id
            self._write(data)
        logger.debug(f"Recorded proposal {proposal_id} in {self.path}")

    def lookup(self, chain_id: int, description_hash: Union[bytes, str]) -> Optional[int]:
        with self._lock:
            return self._load().get(str(chain_id), {}).get(_hash_key(description_hash))

    def proposals(self, chain_id: int) -> Dict[str, int]:
        with self._lock:
            return dict(self._load().get(str(chain_id), {}))
