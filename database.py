import sqlite3
import datetime
import pandas as pd


DEFAULT_MODULES = [
    ("ats_dashboard", "Dashboard", "layout-dashboard"),
    ("ats_jobs", "Vagas", "briefcase"),
    ("ats_funnel", "Funil", "kanban"),
    ("ats_talent_pool", "Banco de Talentos", "users"),
    ("ats_settings", "Configurações", "settings"),
    ("ats_users", "Usuários", "user-cog"),
]

PERMISSION_ACTIONS = ("can_view", "can_create", "can_edit", "can_delete")


def now_iso() -> str:
    return datetime.datetime.now().isoformat()


class DBManager:
    def __init__(self, db_path='ats.db'):
        self.db_path = db_path
        self._init_db()

    def get_connection(self):
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self):
        conn = self.get_connection()
        try:
            c = conn.cursor()

            c.execute('''CREATE TABLE IF NOT EXISTS tags
                         (id INTEGER PRIMARY KEY AUTOINCREMENT,
                          name TEXT NOT NULL, color TEXT NOT NULL,
                          is_archived INTEGER NOT NULL DEFAULT 0, created_at TIMESTAMP)''')

            c.execute('''CREATE TABLE IF NOT EXISTS application_tags
                         (application_id TEXT NOT NULL, tag_id INTEGER NOT NULL, created_at TIMESTAMP,
                          PRIMARY KEY (application_id, tag_id),
                          FOREIGN KEY(tag_id) REFERENCES tags(id) ON DELETE CASCADE)''')

            c.execute('''CREATE TABLE IF NOT EXISTS custom_roles
                         (id INTEGER PRIMARY KEY AUTOINCREMENT,
                          name TEXT NOT NULL UNIQUE, display_name TEXT NOT NULL, description TEXT,
                          base_role TEXT NOT NULL DEFAULT 'custom', is_active INTEGER NOT NULL DEFAULT 1,
                          created_at TIMESTAMP, updated_at TIMESTAMP)''')

            c.execute('''CREATE TABLE IF NOT EXISTS modules
                         (id INTEGER PRIMARY KEY AUTOINCREMENT,
                          name TEXT NOT NULL UNIQUE, display_name TEXT NOT NULL, icon TEXT,
                          is_active INTEGER NOT NULL DEFAULT 1)''')

            c.execute('''CREATE TABLE IF NOT EXISTS role_module_permissions
                         (id INTEGER PRIMARY KEY AUTOINCREMENT,
                          role_id INTEGER NOT NULL, module_id INTEGER NOT NULL,
                          can_view INTEGER NOT NULL DEFAULT 0, can_create INTEGER NOT NULL DEFAULT 0,
                          can_edit INTEGER NOT NULL DEFAULT 0, can_delete INTEGER NOT NULL DEFAULT 0,
                          UNIQUE (role_id, module_id),
                          FOREIGN KEY(role_id) REFERENCES custom_roles(id) ON DELETE CASCADE,
                          FOREIGN KEY(module_id) REFERENCES modules(id) ON DELETE CASCADE)''')

            c.executemany(
                "INSERT OR IGNORE INTO modules (name, display_name, icon, is_active) VALUES (?, ?, ?, 1)",
                DEFAULT_MODULES,
            )

            conn.commit()
        finally:
            conn.close()

    def fetch_dataframe(self, query, params=()):
        conn = self.get_connection()
        try:
            return pd.read_sql(query, conn, params=params)
        finally:
            conn.close()

    def fetch_records(self, query, params=()) -> list[dict]:
        df = self.fetch_dataframe(query, params)
        if df.empty:
            return []
        # NULL columns come back as NaN; hand plain None to the validators.
        return [
            {key: (None if pd.isna(value) else value) for key, value in row.items()}
            for row in df.to_dict(orient="records")
        ]

    def execute_query(self, query, params=()) -> int:
        conn = self.get_connection()
        try:
            c = conn.cursor()
            c.execute(query, params)
            conn.commit()
            return c.lastrowid
        finally:
            conn.close()

    def executemany(self, query, rows) -> None:
        conn = self.get_connection()
        try:
            conn.executemany(query, rows)
            conn.commit()
        finally:
            conn.close()
