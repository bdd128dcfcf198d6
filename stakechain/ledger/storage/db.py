import sqlite3
import threading
from typing import Optional, Dict, Iterable, Tuple, Any

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # State table: Key-Value store for accounts, positions and the pool
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            # Journal: one row per committed operation
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS journal (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    tx_hash TEXT UNIQUE,
                    tx_type TEXT,
                    caller TEXT,
                    timestamp INTEGER,
                    data TEXT
                )
            ''')
            self.conn.commit()

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self.conn.commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def write_batch(self, sets: Dict[str, str], deletes: Iterable[str] = (),
                    journal: Optional[Dict[str, Any]] = None):
        """
        Applies a set of writes, deletes and an optional journal row in one
        SQLite transaction. Either everything lands or nothing does.
        """
        with self._lock:
            try:
                for key, value in sets.items():
                    self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
                for key in deletes:
                    self.cursor.execute('DELETE FROM state WHERE key = ?', (key,))
                if journal is not None:
                    self.cursor.execute(
                        'INSERT INTO journal (tx_hash, tx_type, caller, timestamp, data) VALUES (?, ?, ?, ?, ?)',
                        (journal.get("tx_hash"), journal["tx_type"], journal["caller"],
                         journal["timestamp"], journal["data"])
                    )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    # --- Journal Methods ---
    def get_journal_entry(self, tx_hash: str) -> Optional[Tuple[int, str, str, str, int, str]]:
        """Returns (seq, tx_hash, tx_type, caller, timestamp, data) or None."""
        with self._lock:
            self.cursor.execute(
                'SELECT seq, tx_hash, tx_type, caller, timestamp, data FROM journal WHERE tx_hash = ?',
                (tx_hash,)
            )
            row = self.cursor.fetchone()
            return row if row else None

    def journal_size(self) -> int:
        with self._lock:
            self.cursor.execute('SELECT COUNT(*) FROM journal')
            return self.cursor.fetchone()[0]

    def close(self):
        with self._lock:
            self.conn.close()
