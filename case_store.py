"""
Portal record store.

Persists the case, message and user collections under fixed namespaced keys.
Loads and saves are scoped by client id: a client only ever sees its own cases
and the messages on those cases, and saving one client's subset leaves every
other client's records untouched.
"""
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from case_import import resolve_financials

logger = logging.getLogger(__name__)

CASES_KEY = "portal.cases.v2"
MESSAGES_KEY = "portal.messages.v2"
USERS_KEY = "portal.users.v1"

MESSAGE_AUTHORS = ("Client", "Collector", "System")

DEFAULT_STORE_PATH = os.environ.get("PORTAL_STORE_PATH", "portal_store.json")


class CaseStore:
    """Scoped view over raw key -> list collections. Subclasses provide _read/_write."""

    def _read(self, key):
        raise NotImplementedError

    def _write(self, key, items):
        raise NotImplementedError

    def _read_list(self, key):
        try:
            items = self._read(key)
        except (ValueError, TypeError, OSError) as e:
            logger.warning(f"⚠️  Could not read '{key}' from store, treating as empty: {e}")
            return []
        if items is None:
            return []
        if not isinstance(items, list):
            logger.warning(f"⚠️  '{key}' in store is not a list, treating as empty")
            return []
        return items

    def load(self, client_id=None):
        """
        Load cases and messages.

        Args:
            client_id: Owner to scope to. None returns everything (admin view).

        Returns:
            dict: {"cases": [...], "messages": [...]}
        """
        all_cases = self._read_list(CASES_KEY)
        all_messages = self._read_list(MESSAGES_KEY)
        if client_id is None:
            return {"cases": all_cases, "messages": all_messages}

        cases = [c for c in all_cases if c.get("client_id") == client_id]
        case_ids = {c.get("case_id") for c in cases}
        messages = [m for m in all_messages if m.get("case_id") in case_ids]
        return {"cases": cases, "messages": messages}

    def save_cases(self, cases, client_id=None):
        cases = list(cases)
        if client_id is None:
            self._write(CASES_KEY, cases)
            return
        others = [c for c in self._read_list(CASES_KEY) if c.get("client_id") != client_id]
        cases = [{**c, "client_id": client_id} for c in cases]
        self._write(CASES_KEY, others + cases)
        logger.debug(f"Saved {len(cases)} case(s) for {client_id}, {len(others)} kept for other clients")

    def save_messages(self, messages, client_id=None):
        messages = list(messages)
        if client_id is None:
            self._write(MESSAGES_KEY, messages)
            return
        case_ids = {c.get("case_id") for c in self._read_list(CASES_KEY) if c.get("client_id") == client_id}
        others = [m for m in self._read_list(MESSAGES_KEY) if m.get("case_id") not in case_ids]
        self._write(MESSAGES_KEY, others + messages)

    def load_users(self):
        return self._read_list(USERS_KEY)

    def save_users(self, users):
        self._write(USERS_KEY, list(users))

    def reset(self):
        self._write(CASES_KEY, [])
        self._write(MESSAGES_KEY, [])
        logger.info("Store reset: all cases and messages removed")


class MemoryStore(CaseStore):
    def __init__(self, data=None):
        self.data = dict(data or {})

    def _read(self, key):
        return self.data.get(key)

    def _write(self, key, items):
        self.data[key] = items


class JsonFileStore(CaseStore):
    """All collections in one JSON object on disk."""

    def __init__(self, path=DEFAULT_STORE_PATH):
        self.path = Path(path)

    def _read_all(self):
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"{self.path.name} does not hold a JSON object")
        return data

    def _read(self, key):
        return self._read_all().get(key)

    def _write(self, key, items):
        try:
            data = self._read_all()
        except ValueError as e:
            logger.warning(f"⚠️  Overwriting unreadable store {self.path}: {e}")
            data = {}
        data[key] = items
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp, self.path)
        except Exception:
            os.unlink(tmp)
            raise

# ------------------------- Messages & seed data -------------------------

def new_message(case_id, body, author="Client", now=None):
    if author not in MESSAGE_AUTHORS:
        raise ValueError(f"Unknown message author '{author}'. Expected one of {list(MESSAGE_AUTHORS)}")
    created_at = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "id": f"{case_id}-{created_at}",
        "case_id": case_id,
        "author": author,
        "created_at": created_at,
        "body": body,
        "read": author == "Client",
    }

def load_seed_file(path, client_id):
    """
    Read a JSON array of case records and assign them to `client_id`.

    Financial fields are resolved on the way in so the portal never sees a
    record with missing totals.
    """
    path = Path(path)
    if not path.exists():
        logger.info(f"Seed file not found, skipping: {path}")
        return []
    try:
        records = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        logger.warning(f"⚠️  Seed file {path.name} is not valid JSON: {e}")
        return []
    if not isinstance(records, list):
        logger.warning(f"⚠️  Seed file {path.name} does not hold a list of cases")
        return []

    cases = []
    for rec in records:
        if not isinstance(rec, dict) or not str(rec.get("case_id", "")).strip():
            continue
        cases.append(resolve_financials({**rec, "client_id": client_id}))
    logger.info(f"✅ Loaded {len(cases)} case(s) from {path.name}")
    return cases
