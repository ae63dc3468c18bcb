import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from kakeibo.services.schema_manager import NAME_INDEX, SchemaManager, column_names
from kakeibo.services.seeder import DEFAULT_CATEGORY_NAMES

CATEGORY_COLUMNS = {
    "id", "name", "icon", "color", "is_default", "is_visible",
    "is_active", "sort_order", "created_at", "type",
}
TRANSACTION_COLUMNS = {"id", "amount", "type", "date", "note", "category_id", "user_id"}


def _scalar(database, sql, **params):
    with database.engine.connect() as conn:
        return conn.execute(text(sql), params).scalar()


def _active_default_names(database):
    with database.engine.connect() as conn:
        rows = conn.execute(text(
            "SELECT name FROM categories WHERE is_active = 1 AND is_default = 1 "
            "ORDER BY sort_order"
        )).all()
    return [r[0] for r in rows]


class TestFreshDatabase:
    def test_run_reports_no_failures(self, database):
        assert SchemaManager(database).run() == []

    def test_all_columns_present(self, migrated):
        with migrated.engine.connect() as conn:
            assert column_names(conn, "categories") == CATEGORY_COLUMNS
            assert column_names(conn, "transactions") == TRANSACTION_COLUMNS

    def test_baseline_is_narrow_before_migrate(self, database):
        manager = SchemaManager(database)
        manager.ensure_schema()
        with database.engine.connect() as conn:
            assert column_names(conn, "categories") == {"id", "name"}
            assert "type" not in column_names(conn, "transactions")
        added = manager.migrate()
        assert "categories.is_active" in added
        assert "transactions.type" in added

    @pytest.mark.parametrize("table", ["categories", "transactions"])
    def test_ids_never_reused(self, migrated, table):
        sql = _scalar(
            migrated,
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name",
            name=table,
        )
        assert "AUTOINCREMENT" in sql.upper()

    def test_deleted_top_id_not_handed_out_again(self, migrated):
        with migrated.engine.begin() as conn:
            top = conn.execute(text("SELECT MAX(id) FROM categories")).scalar()
            conn.execute(text("DELETE FROM categories WHERE id = :id"), {"id": top})
            conn.execute(text("INSERT INTO categories (name) VALUES ('新規')"))
        assert _scalar(migrated, "SELECT id FROM categories WHERE name = '新規'") == top + 1

    def test_defaults_seeded(self, migrated):
        assert _active_default_names(migrated) == DEFAULT_CATEGORY_NAMES

    def test_partial_unique_index_created(self, migrated):
        sql = _scalar(
            migrated,
            "SELECT sql FROM sqlite_master WHERE type = 'index' AND name = :name",
            name=NAME_INDEX,
        )
        assert sql is not None
        assert "WHERE" in sql.upper()


class TestIdempotence:
    def test_second_run_changes_nothing(self, migrated):
        manager = SchemaManager(migrated)
        assert manager.migrate() == []
        assert manager.run() == []
        assert _scalar(migrated, "SELECT COUNT(*) FROM categories") == len(DEFAULT_CATEGORY_NAMES)
        assert _active_default_names(migrated) == DEFAULT_CATEGORY_NAMES

    def test_seed_skips_names_already_active(self, migrated):
        assert SchemaManager(migrated).seed_default_categories() == 0


class TestNameIndex:
    def test_duplicate_active_name_rejected_by_database(self, migrated):
        with pytest.raises(IntegrityError):
            with migrated.engine.begin() as conn:
                conn.execute(text("INSERT INTO categories (name, is_active) VALUES ('食費', 1)"))

    def test_inactive_duplicate_allowed(self, migrated):
        with migrated.engine.begin() as conn:
            conn.execute(text("INSERT INTO categories (name, is_active) VALUES ('食費', 0)"))
        assert _scalar(migrated, "SELECT COUNT(*) FROM categories WHERE name = '食費'") == 2


class TestLegacyDatabase:
    @pytest.fixture
    def legacy(self, database):
        with database.engine.begin() as conn:
            conn.execute(text(
                "CREATE TABLE categories (id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "name TEXT NOT NULL, type INTEGER)"
            ))
            conn.execute(text("CREATE UNIQUE INDEX idx_category_name ON categories(name)"))
            conn.execute(text("INSERT INTO categories (name, type) VALUES ('食費', NULL)"))
            conn.execute(text("INSERT INTO categories (name, type) VALUES ('給料', 1)"))
            conn.execute(text("INSERT INTO categories (name, type) VALUES ('雑費', 0)"))
        return database

    def test_run_upgrades_without_failures(self, legacy):
        assert SchemaManager(legacy).run() == []
        with legacy.engine.connect() as conn:
            assert column_names(conn, "categories") == CATEGORY_COLUMNS
            assert column_names(conn, "transactions") == TRANSACTION_COLUMNS

    def test_plain_unique_index_replaced(self, legacy):
        SchemaManager(legacy).run()
        with legacy.engine.connect() as conn:
            names = {
                r[0] for r in conn.execute(
                    text("SELECT name FROM sqlite_master WHERE type = 'index'")
                )
            }
        assert "idx_category_name" not in names
        assert NAME_INDEX in names

    def test_types_normalized(self, legacy):
        SchemaManager(legacy).run()
        assert _scalar(legacy, "SELECT type FROM categories WHERE name = '食費'") == "expense"
        assert _scalar(legacy, "SELECT type FROM categories WHERE name = '給料'") == "income"
        assert _scalar(legacy, "SELECT type FROM categories WHERE name = '雑費'") == "expense"
        assert _scalar(legacy, "SELECT COUNT(*) FROM categories WHERE type IS NULL") == 0

    def test_existing_default_name_adopted_not_duplicated(self, legacy):
        SchemaManager(legacy).run()
        assert _scalar(legacy, "SELECT COUNT(*) FROM categories WHERE name = '食費'") == 1
        assert _scalar(legacy, "SELECT icon FROM categories WHERE name = '食費'") == "fork.knife"
        assert _scalar(legacy, "SELECT is_default FROM categories WHERE name = '食費'") == 1
        assert _active_default_names(legacy) == DEFAULT_CATEGORY_NAMES


class TestDefaultSettings:
    def test_hidden_default_stays_hidden(self, migrated):
        with migrated.engine.begin() as conn:
            conn.execute(text(
                "UPDATE categories SET is_visible = 0, icon = 'x', color = 'red' WHERE name = '娯楽'"
            ))
        SchemaManager(migrated).refresh_default_settings()
        assert _scalar(migrated, "SELECT is_visible FROM categories WHERE name = '娯楽'") == 0
        assert _scalar(migrated, "SELECT icon FROM categories WHERE name = '娯楽'") == "gamecontroller.fill"
        assert _scalar(migrated, "SELECT color FROM categories WHERE name = '娯楽'") == "purple"

    def test_null_visibility_set_visible(self, migrated):
        with migrated.engine.begin() as conn:
            conn.execute(text("UPDATE categories SET is_visible = NULL WHERE name = '家賃'"))
        SchemaManager(migrated).refresh_default_settings()
        assert _scalar(migrated, "SELECT is_visible FROM categories WHERE name = '家賃'") == 1
