import sqlite3

import pytest

from francis.sqladapter import DatabaseAdapter, NoRowsError


@pytest.fixture
def db():
    conn = sqlite3.connect(":memory:", isolation_level=None)
    adapter = DatabaseAdapter(conn)
    adapter.exec("CREATE TABLE items (name TEXT PRIMARY KEY, qty INTEGER)")
    yield adapter
    conn.close()


def _count(db):
    return db.query_row("SELECT COUNT(*) FROM items")[0]


def test_exec_returns_rows_affected(db):
    assert db.exec("INSERT INTO items (name, qty) VALUES (?, ?)", "a", 1) == 1
    assert db.exec("INSERT INTO items (name, qty) VALUES (?, ?)", "b", 1) == 1
    assert db.exec("UPDATE items SET qty = ?", 5) == 2
    assert db.exec("DELETE FROM items WHERE name = ?", "missing") == 0


def test_exec_ddl_reports_zero(db):
    assert db.exec("CREATE TABLE other (x INTEGER)") == 0


def test_query_row_returns_first_row(db):
    db.exec("INSERT INTO items (name, qty) VALUES (?, ?)", "a", 3)
    assert db.query_row("SELECT name, qty FROM items WHERE name = ?", "a") == ("a", 3)


def test_query_row_without_rows_raises(db):
    with pytest.raises(NoRowsError) as info:
        db.query_row("SELECT name FROM items")
    assert db.is_no_rows_error(info.value) is True


def test_is_no_rows_error_rejects_other_errors(db):
    assert db.is_no_rows_error(ValueError("x")) is False
    assert db.is_no_rows_error(None) is False


def test_commit_persists(db):
    tx = db.begin()
    assert tx.exec("INSERT INTO items (name, qty) VALUES (?, ?)", "a", 1) == 1
    assert tx.query_row("SELECT qty FROM items WHERE name = ?", "a") == (1,)
    tx.commit()
    assert _count(db) == 1


def test_rollback_discards(db):
    tx = db.begin()
    tx.exec("INSERT INTO items (name, qty) VALUES (?, ?)", "a", 1)
    tx.rollback()
    assert _count(db) == 0


def test_context_manager_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with db.begin() as tx:
            tx.exec("INSERT INTO items (name, qty) VALUES (?, ?)", "a", 1)
            raise RuntimeError("boom")
    assert _count(db) == 0


def test_context_manager_commits_on_success(db):
    with db.begin() as tx:
        tx.exec("INSERT INTO items (name, qty) VALUES (?, ?)", "a", 1)
    assert db.query_row("SELECT name FROM items") == ("a",)