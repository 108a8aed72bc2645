import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from voxprint.core.exceptions import InvalidArgumentError, SampleRateMismatchError
from voxprint.core.matching_engine import MatchingEngine
from voxprint.models.voice_print import VoicePrint
from voxprint.utils.file_utils import ensure_dir_exists, load_json, save_json


class VoicePrintStore:
    """Simple file-based database of voice prints (one JSON document)"""

    FILE_NAME = "voice_prints.json"

    def __init__(self, database_dir: str):
        self.database_dir = Path(database_dir)
        self.prints_file = self.database_dir / self.FILE_NAME

        self.logger = logging.getLogger(__name__)

        ensure_dir_exists(self.database_dir)

        self._load()

    def _load(self):
        """Load the database file, or start an empty one"""
        data = load_json(self.prints_file)
        if data is None:
            data = {"sample_rate": None, "users": {}, "universal_model": None,
                    "universal_model_frozen": False}
        if not isinstance(data.get("users"), dict):
            raise InvalidArgumentError(f"Malformed voice print database: {self.prints_file}")
        self.data = data

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    @property
    def sample_rate(self) -> Optional[float]:
        return self.data.get("sample_rate")

    def load_voice_prints(self) -> Dict[str, VoicePrint]:
        """Every stored print by user name"""
        return {
            name: VoicePrint.from_dict(entry)
            for name, entry in self.data["users"].items()
        }

    def load_universal_model(self) -> Tuple[Optional[VoicePrint], bool]:
        """Stored universal model and whether it was frozen"""
        model = self.data.get("universal_model")
        frozen = bool(self.data.get("universal_model_frozen", False))
        return (VoicePrint.from_dict(model) if model else None), frozen

    def load_engine(self, sample_rate: float, config: Optional[Dict[str, Any]] = None,
                    **engine_kwargs) -> MatchingEngine:
        """
        Build a matching engine seeded with the stored prints

        A frozen universal model is set again; an automatic one is rebuilt
        from the prints by the engine itself.

        Raises:
            SampleRateMismatchError: If the prints were extracted at another rate
        """
        stored_rate = self.sample_rate
        if self.data["users"] and stored_rate is not None and float(stored_rate) != float(sample_rate):
            raise SampleRateMismatchError(sample_rate, stored_rate, source=str(self.prints_file))

        engine = MatchingEngine(sample_rate, self.load_voice_prints(), config=config, **engine_kwargs)

        universal_model, frozen = self.load_universal_model()
        if frozen and universal_model is not None:
            engine.set_universal_model(universal_model)

        self.logger.info(f"Loaded {len(engine)} voice prints from {self.prints_file}")
        return engine

    def save_engine(self, engine: MatchingEngine):
        """
        Persist every print of the engine, keeping creation dates of known users

        Raises:
            InvalidArgumentError: If two user keys have the same text form
                (e.g. ``1`` and ``"1"``); nothing is written then
        """
        now = self._now()
        previous = self.data["users"]
        users = {}
        for key, voice_print in engine.voice_prints().items():
            name = str(key)
            if name in users:
                raise InvalidArgumentError(
                    f"User keys collide once stored as text: [{name}]"
                )
            entry = voice_print.to_dict()
            entry["created_at"] = previous.get(name, {}).get("created_at", now)
            entry["updated_at"] = now
            users[name] = entry

        universal_model = engine.get_universal_model()
        self.data = {
            "sample_rate": engine.sample_rate,
            "users": users,
            "universal_model": universal_model.to_dict() if universal_model is not None else None,
            "universal_model_frozen": engine.is_universal_model_frozen,
            "last_updated": now,
        }
        save_json(self.data, self.prints_file)
        self.logger.info(f"Saved {len(users)} voice prints to {self.prints_file}")

    def get_all_users_list(self):
        """Stored users with their weights and dates"""
        return [
            {
                "name": name,
                "weight": entry.get("weight", 1),
                "created_at": entry.get("created_at", ""),
                "updated_at": entry.get("updated_at", ""),
            }
            for name, entry in sorted(self.data["users"].items())
        ]

    def get_statistics(self) -> Dict[str, Any]:
        """Database statistics"""
        users = self.data["users"]
        return {
            "total_users": len(users),
            "total_samples": sum(entry.get("weight", 1) for entry in users.values()),
            "sample_rate": self.sample_rate,
            "universal_model_frozen": bool(self.data.get("universal_model_frozen", False)),
            "last_updated": self.data.get("last_updated", "N/A"),
            "database_dir": str(self.database_dir),
        }
