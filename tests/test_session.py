import tempfile
import unittest
from pathlib import Path

from untisplan.model import Credentials, Session
from untisplan.session import SessionStore
from untisplan.storage import JsonFileStore


class TestSessionStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.sessions = SessionStore(JsonFileStore(self.root))

    def test_load_absent(self) -> None:
        self.assertIsNone(self.sessions.load())
        self.assertIsNone(self.sessions.load_credentials())

    def test_save_and_load(self) -> None:
        session = Session("abc", "hh.webuntis.com", "77", person_id=42, person_type=5, klasse_id=3)
        self.sessions.save(session)
        self.assertEqual(self.sessions.load(), session)

    def test_malformed_session_is_absent(self) -> None:
        (self.root / "sessionInfo.json").write_text("[1, 2", encoding="utf-8")
        self.assertIsNone(self.sessions.load())

        (self.root / "sessionInfo.json").write_text('{"personId": 4}', encoding="utf-8")
        self.assertIsNone(self.sessions.load())

        (self.root / "credentials.json").write_text('{"username": "anna"}', encoding="utf-8")
        self.assertIsNone(self.sessions.load_credentials())

    def test_clear_removes_session_and_credentials(self) -> None:
        self.sessions.save(Session("abc", "hh.webuntis.com", "77"))
        self.sessions.save_credentials(Credentials("hh.webuntis.com", "77", "anna", "secret"))

        self.sessions.clear()

        self.assertIsNone(self.sessions.load())
        self.assertIsNone(self.sessions.load_credentials())
        self.assertEqual(list(self.root.iterdir()), [])


if __name__ == "__main__":
    unittest.main()
