# python -m pytest app/tests/cores/test_sql_guard.py -v

import pytest

from app.core.sql_guard import SQLGuard, SQLValidationError


class TestSQLGuardReadOnly:
    """SQLGuard read-only checks"""

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM users WHERE id = 1",
            "select u.name from users u join orders o on u.id = o.user_id;",
            "WITH recent AS (SELECT id FROM orders) SELECT * FROM recent",
            "EXPLAIN SELECT * FROM users",
            "EXPLAIN FORMAT=JSON SELECT * FROM users",
            "SHOW CREATE TABLE users",
            "SHOW INDEX FROM users",
            "DESCRIBE users",
            "SELECT 'DROP TABLE users' AS label FROM users",
        ],
    )
    def test_read_only_statements_pass(self, sql):
        SQLGuard().check_read_only(sql)

    @pytest.mark.parametrize(
        "sql",
        [
            "DROP TABLE users",
            "DELETE FROM users",
            "UPDATE users SET name = 'x'",
            "INSERT INTO users (id) VALUES (1)",
            "TRUNCATE TABLE users",
            "GRANT ALL ON *.* TO 'x'@'%'",
            "ALTER TABLE users ADD COLUMN age int",
        ],
    )
    def test_modifying_statements_are_rejected(self, sql):
        with pytest.raises(SQLValidationError) as excinfo:
            SQLGuard().check_read_only(sql)

        assert "not allowed" in str(excinfo.value)

    def test_multiple_statements_are_rejected(self):
        with pytest.raises(SQLValidationError) as excinfo:
            SQLGuard().check_read_only("SELECT * FROM users; DROP TABLE users")

        assert "multiple statements" in str(excinfo.value)

    def test_explained_modification_is_rejected(self):
        with pytest.raises(SQLValidationError) as excinfo:
            SQLGuard().check_read_only("EXPLAIN DELETE FROM users WHERE id = 1")

        assert "DELETE" in str(excinfo.value)

    def test_file_export_is_rejected(self):
        with pytest.raises(SQLValidationError) as excinfo:
            SQLGuard().check_read_only("SELECT * FROM users INTO OUTFILE '/tmp/users.csv'")

        assert "file export" in str(excinfo.value)

    def test_executable_comment_is_rejected(self):
        with pytest.raises(SQLValidationError) as excinfo:
            SQLGuard().check_read_only("SELECT 1 /*!50000 , (SELECT 1) */")

        assert "executable comment" in str(excinfo.value)

    def test_empty_statement_is_rejected(self):
        with pytest.raises(SQLValidationError):
            SQLGuard().check_read_only("   ;  ")
