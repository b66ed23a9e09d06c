from pathlib import Path

import pytest
from sqlalchemy.exc import IntegrityError

from userdb.db import RunResult, initialize

NOW = 1700000000


@pytest.fixture()
def database(tmp_path: Path):
    db = initialize(tmp_path / "users-handle.db")
    try:
        yield db
    finally:
        db.close()


def create_user(database, user_id: str, email: str | None = None) -> RunResult:
    return database.run(
        "INSERT INTO users (id, email, password_hash, username, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
        user_id,
        email or f"{user_id}@example.com",
        "hash",
        user_id.title(),
        NOW,
        NOW,
    )


def test_get_without_match_returns_none(database):
    assert database.get("SELECT * FROM users WHERE id = ?", "missing") is None


def test_get_and_all_return_dict_rows(database):
    create_user(database, "alice")
    create_user(database, "bob")

    row = database.get("SELECT id, email, is_admin FROM users WHERE id = ?", "alice")
    rows = database.all("SELECT id FROM users ORDER BY id DESC")

    assert row == {"id": "alice", "email": "alice@example.com", "is_admin": 0}
    assert rows == [{"id": "bob"}, {"id": "alice"}]
    assert database.all("SELECT id FROM users WHERE is_admin = 1") == []


def test_parameters_accept_list_and_mapping(database):
    create_user(database, "carol")

    by_list = database.get("SELECT id FROM users WHERE id = ? AND email = ?", ["carol", "carol@example.com"])
    by_name = database.get("SELECT id FROM users WHERE email = :email", {"email": "carol@example.com"})

    assert by_list == {"id": "carol"}
    assert by_name == {"id": "carol"}


def test_run_reports_changes(database):
    inserted = create_user(database, "dave")
    create_user(database, "erin")

    updated = database.run("UPDATE users SET is_admin = 1 WHERE id IN (?, ?)", "dave", "erin")
    untouched = database.run("DELETE FROM users WHERE id = ?", "nobody")

    assert inserted.changes == 1
    assert isinstance(inserted.last_row_id, int)
    assert updated.changes == 2
    assert untouched.changes == 0


def test_prepared_statement_reuses_sql(database):
    insert = database.prepare(
        "INSERT INTO feedback (id, user_id, content, created_at) VALUES (?, ?, ?, ?)"
    )
    select = database.prepare("SELECT content FROM feedback WHERE user_id = ? ORDER BY created_at")
    create_user(database, "frank")

    insert.run("fb-1", "frank", "first", NOW)
    insert.run("fb-2", "frank", "second", NOW + 1)

    assert select.get("frank") == {"content": "first"}
    assert select.all("frank") == [{"content": "first"}, {"content": "second"}]


def test_exec_runs_multi_statement_script(database):
    database.exec(
        """
        CREATE TABLE IF NOT EXISTS scratch (id INTEGER PRIMARY KEY, note TEXT);
        INSERT INTO scratch (note) VALUES ('a');
        INSERT INTO scratch (note) VALUES ('b');
        """
    )

    assert database.all("SELECT note FROM scratch ORDER BY id") == [{"note": "a"}, {"note": "b"}]


def test_duplicate_email_is_rejected(database):
    create_user(database, "gina", "shared@example.com")

    with pytest.raises(IntegrityError):
        create_user(database, "hank", "shared@example.com")


def test_user_can_like_a_target_once(database):
    create_user(database, "ivan")
    like = "INSERT INTO likes (id, type, target_id, user_id, created_at) VALUES (?, ?, ?, ?, ?)"
    database.run(like, "like-1", "post", "post-1", "ivan", NOW)
    database.run(like, "like-2", "comment", "post-1", "ivan", NOW)

    with pytest.raises(IntegrityError):
        database.run(like, "like-3", "post", "post-1", "ivan", NOW)

    assert database.get("SELECT COUNT(*) AS cnt FROM likes") == {"cnt": 2}


def test_user_settings_theme_defaults_to_dark(database):
    create_user(database, "judy")
    database.run("INSERT INTO user_settings (user_id, updated_at) VALUES (?, ?)", "judy", NOW)

    assert database.get("SELECT theme, localstorage_data FROM user_settings WHERE user_id = ?", "judy") == {
        "theme": "dark",
        "localstorage_data": None,
    }


def test_deleting_user_cascades_but_keeps_changelog(database):
    create_user(database, "kate")
    create_user(database, "liam")
    database.run("INSERT INTO feedback (id, user_id, content, created_at) VALUES (?, ?, ?, ?)", "fb", "kate", "hi", NOW)
    database.run("INSERT INTO user_settings (user_id, localstorage_data, updated_at) VALUES (?, ?, ?)", "kate", "{}", NOW)
    database.run(
        "INSERT INTO user_sessions (session_id, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
        "sess",
        "kate",
        NOW,
        NOW + 3600,
    )
    database.run(
        "INSERT INTO comments (id, type, target_id, user_id, content, created_at) VALUES (?, ?, ?, ?, ?, ?)",
        "cm",
        "changelog",
        "entry-1",
        "kate",
        "nice",
        NOW,
    )
    database.run(
        "INSERT INTO likes (id, type, target_id, user_id, created_at) VALUES (?, ?, ?, ?, ?)",
        "lk",
        "changelog",
        "entry-1",
        "kate",
        NOW,
    )
    database.run(
        "INSERT INTO likes (id, type, target_id, user_id, created_at) VALUES (?, ?, ?, ?, ?)",
        "lk-other",
        "changelog",
        "entry-1",
        "liam",
        NOW,
    )
    database.run(
        "INSERT INTO changelog (id, title, content, author_id, created_at) VALUES (?, ?, ?, ?, ?)",
        "entry-1",
        "v2",
        "New themes",
        "kate",
        NOW,
    )

    deleted = database.run("DELETE FROM users WHERE id = ?", "kate")

    assert deleted.changes == 1
    for table in ("feedback", "user_settings", "user_sessions", "comments"):
        assert database.get(f"SELECT COUNT(*) AS cnt FROM {table}") == {"cnt": 0}
    assert database.all("SELECT id FROM likes") == [{"id": "lk-other"}]
    assert database.get("SELECT author_id FROM changelog WHERE id = ?", "entry-1") == {"author_id": "kate"}


def test_feedback_requires_existing_user(database):
    with pytest.raises(IntegrityError):
        database.run(
            "INSERT INTO feedback (id, user_id, content, created_at) VALUES (?, ?, ?, ?)",
            "orphan",
            "ghost",
            "hello",
            NOW,
        )


def test_expired_sessions_are_filtered_by_timestamp(database):
    create_user(database, "mona")
    session = "INSERT INTO user_sessions (session_id, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)"
    database.run(session, "old", "mona", NOW - 7200, NOW - 3600)
    database.run(session, "live", "mona", NOW, NOW + 3600)

    rows = database.all("SELECT session_id FROM user_sessions WHERE user_id = ? AND expires_at > ?", "mona", NOW)

    assert rows == [{"session_id": "live"}]
