# =============================================================================
# order_core/auth/session_store.py
# Persisted session fields of the logged-in representative
# =============================================================================

from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from order_core.offline.safe_storage import SafeStorage

logger = logging.getLogger(__name__)

# Fixed field names in SafeStorage
SELECTED_TEAM_KEY = "selected_team_code"
REPRESENTATIVE_CODE_KEY = "representative_code"
REPRESENTATIVE_NAME_KEY = "representative_name"
CODE_HISTORY_KEY = "representative_codes"


@dataclass
class SessionFields:
    """What a successful login leaves behind."""
    team_code: str
    representative_code: str
    representative_name: str = ""

    def to_storage(self) -> Dict[str, str]:
        return {
            SELECTED_TEAM_KEY: self.team_code,
            REPRESENTATIVE_CODE_KEY: self.representative_code,
            REPRESENTATIVE_NAME_KEY: self.representative_name,
        }


class SessionStore:
    """Reads and writes SessionFields through SafeStorage."""

    def __init__(self, storage: SafeStorage):
        self.storage = storage

    def history(self) -> List[str]:
        """Representative codes used on this device, oldest first."""
        raw = self.storage.get(CODE_HISTORY_KEY)
        if not raw:
            return []
        try:
            codes = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable representative code history")
            return []
        return [str(code) for code in codes] if isinstance(codes, list) else []

    def save(self, fields: SessionFields, remember: bool = False) -> bool:
        """
        Persist the session fields in one batch.

        Args:
            fields: Session to store
            remember: Also append the representative code to the history
                (once; codes already present are not repeated)

        Returns:
            True if the batch was written
        """
        items = fields.to_storage()
        if remember:
            codes = self.history()
            if fields.representative_code not in codes:
                codes.append(fields.representative_code)
                items[CODE_HISTORY_KEY] = json.dumps(codes)
        return self.storage.set_many(items)

    def load(self) -> Optional[SessionFields]:
        team_code = self.storage.get(SELECTED_TEAM_KEY)
        representative_code = self.storage.get(REPRESENTATIVE_CODE_KEY)
        if not team_code or not representative_code:
            return None
        return SessionFields(
            team_code=team_code,
            representative_code=representative_code,
            representative_name=self.storage.get(REPRESENTATIVE_NAME_KEY) or "",
        )

    def clear(self) -> None:
        """Forget the current session; the code history is kept."""
        for key in (SELECTED_TEAM_KEY, REPRESENTATIVE_CODE_KEY, REPRESENTATIVE_NAME_KEY):
            self.storage.remove(key)
