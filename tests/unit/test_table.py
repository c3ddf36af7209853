from __future__ import annotations

import uuid

import pytest

from handlr.database import Record, Table
from handlr.exceptions import DatabaseException, PreconditionError

UUID_999 = "00000000-0000-0000-0000-000000000999"
UUID_123 = "00000000-0000-0000-0000-000000000123"


@pytest.fixture
def users(fake_db, user_schema) -> Table:
    return Table(fake_db, "users", user_schema)


@pytest.fixture
def accounts(fake_db, account_schema) -> Table:
    return Table(fake_db, "accounts", account_schema)


class TestFindById:
    def test_uuid_round_trip(self, fake_db, accounts):
        binary = uuid.UUID(UUID_123).bytes
        fake_db.queue({"id": binary, "owner_id": None, "label": "main"})

        record = accounts.find_by_id(UUID_123)

        assert fake_db.statements == [('SELECT * FROM "accounts" WHERE "id" = %s', [binary])]
        assert fake_db.to_bin_calls == [UUID_123]
        assert fake_db.to_uuid_calls == [binary]
        assert isinstance(record, Record)
        assert record.id == UUID_123
        assert record.label == "main"

    def test_converts_extra_uuid_columns_back(self, fake_db, accounts):
        owner = uuid.uuid4()
        fake_db.queue({"id": uuid.UUID(UUID_123).bytes, "owner_id": owner.bytes, "label": "x"})

        record = accounts.find_by_id(UUID_123)

        assert record.owner_id == str(owner)

    def test_numeric_id_is_passed_through(self, fake_db, users):
        fake_db.queue({"id": 5, "name": "phil", "age": 30, "active": True, "score": None})

        record = users.find_by_id(5)

        assert fake_db.last_params == [5]
        assert fake_db.to_bin_calls == []
        assert record.id == 5
        assert record.age == 30

    def test_not_found_returns_none(self, fake_db, users):
        assert users.find_by_id(99999) is None

    @pytest.mark.parametrize("wrap", [bytes, memoryview])
    def test_binary_id_is_bound_unchanged(self, fake_db, accounts, wrap):
        binary = uuid.UUID(UUID_123).bytes

        accounts.find_by_id(wrap(binary))

        assert fake_db.last_params == [binary]


class TestFindWhere:
    def test_returns_hydrated_records(self, fake_db, users):
        fake_db.queue({"id": 1, "name": "a"}, {"id": 2, "name": "b"})

        rows = users.find_where()

        assert fake_db.last_sql == 'SELECT * FROM "users"'
        assert len(rows) == 2
        assert all(isinstance(r, Record) for r in rows)
        assert rows[1].id == 2

    def test_builds_clauses_and_binds_limit_offset(self, fake_db, users):
        users.find_where("age > %s AND active = %s", [18, True], order_by="name ASC", limit=10, offset=20)

        assert fake_db.last_sql == (
            'SELECT * FROM "users" WHERE age > %s AND active = %s ORDER BY name ASC LIMIT %s OFFSET %s'
        )
        assert fake_db.last_params == [18, True, 10, 20]

    def test_empty_result(self, users):
        assert users.find_where("name = %s", ["nobody"]) == []

    def test_find_first(self, fake_db, users):
        fake_db.queue({"id": 4, "name": "first"})

        record = users.find_first("name = %s", ["first"], order_by="id")

        assert record.id == 4
        assert fake_db.last_sql.endswith("ORDER BY id LIMIT %s")
        assert fake_db.last_params == ["first", 1]
        assert users.find_first() is None

    def test_custom_hydrate(self, fake_db, user_schema):
        seen = []

        def hydrate(row):
            seen.append(row)
            return user_schema.new(row)

        table = Table(fake_db, "users", user_schema, hydrate=hydrate)
        fake_db.queue({"id": 1, "name": "a"})

        table.find_where()

        assert seen == [{"id": 1, "name": "a"}]


class TestCount:
    def test_count_by_where(self, fake_db, users):
        fake_db.queue({"aggregate": 12})

        assert users.count_by_where("active = %s", [True]) == 12
        assert fake_db.statements == [
            ('SELECT COUNT(*) AS aggregate FROM "users" WHERE active = %s', [True])
        ]

    def test_count_without_where(self, fake_db, users):
        fake_db.queue({"aggregate": 0})

        assert users.count_by_where() == 0
        assert fake_db.last_sql == 'SELECT COUNT(*) AS aggregate FROM "users"'


class TestInsert:
    def test_sets_auto_increment_id(self, fake_db, users):
        fake_db.last_insert_id = 42
        record = users.schema.new({"name": "x"})

        out = users.insert(record)

        assert out is record
        assert out.id == 42
        assert fake_db.insert_id_calls == 1
        assert fake_db.statements == [
            (
                'INSERT INTO "users" ("name", "age", "active", "score") VALUES (%s, %s, %s, %s)',
                ["x", None, None, None],
            )
        ]

    def test_preserves_uuid_id(self, fake_db, accounts):
        record = accounts.schema.new({"id": UUID_999, "label": "main"})

        out = accounts.insert(record)

        assert out.id == UUID_999
        assert fake_db.insert_id_calls == 0
        assert fake_db.to_bin_calls == [UUID_999]
        assert fake_db.last_params == [uuid.UUID(UUID_999).bytes, None, "main"]

    def test_converts_declared_uuid_columns(self, fake_db, accounts):
        owner = str(uuid.uuid4())
        record = accounts.schema.new({"owner_id": owner})

        accounts.insert(record)

        assert fake_db.to_bin_calls == [record.id, owner]
        assert record.owner_id == owner

    def test_explicit_numeric_id_is_kept(self, fake_db, users):
        record = users.schema.new({"id": 7, "name": "x"})

        users.insert(record)

        assert record.id == 7
        assert fake_db.insert_id_calls == 0
        assert fake_db.last_params[0] == 7

    def test_store_failure_propagates(self, users, monkeypatch):
        def boom(sql, params=()):
            raise RuntimeError("constraint violated")

        monkeypatch.setattr(users.db, "execute", boom)

        with pytest.raises(RuntimeError, match="constraint violated"):
            users.insert(users.schema.new({"name": "x"}))


class TestInsertMany:
    def test_single_statement_row_major(self, fake_db, accounts):
        uuid1 = "00000000-0000-0000-0000-000000000011"
        uuid2 = "00000000-0000-0000-0000-000000000022"
        r1 = accounts.schema.new({"id": uuid1, "label": "a"})
        r2 = accounts.schema.new({"id": uuid2, "label": "b"})
        records = [r1, r2]

        out = accounts.insert_many(records)

        assert out is records
        assert fake_db.to_bin_calls == [uuid1, uuid2]
        assert len(fake_db.statements) == 1
        sql, params = fake_db.statements[0]
        assert sql == (
            'INSERT INTO "accounts" ("id", "owner_id", "label") VALUES (%s, %s, %s), (%s, %s, %s)'
        )
        assert params == [
            uuid.UUID(uuid1).bytes, None, "a",
            uuid.UUID(uuid2).bytes, None, "b",
        ]

    def test_does_not_back_fill_auto_increment_ids(self, fake_db, users):
        records = [users.schema.new({"name": "a"}), users.schema.new({"name": "b"})]

        users.insert_many(records)

        assert [r.id for r in records] == [None, None]
        assert fake_db.insert_id_calls == 0
        assert fake_db.last_sql.count("(%s, %s, %s, %s)") == 2

    def test_column_order_follows_first_record(self, fake_db, users):
        r1 = users.schema.new({"name": "a", "x": 1, "y": 2})
        r2 = users.schema.new({"name": "b", "y": 4, "x": 3})

        users.insert_many([r1, r2])

        assert fake_db.last_params == ["a", None, None, None, 1, 2, "b", None, None, None, 3, 4]

    def test_empty_input_rejected(self, fake_db, users):
        with pytest.raises(PreconditionError):
            users.insert_many([])
        assert fake_db.statements == []

    def test_heterogeneous_columns_rejected(self, fake_db, users):
        r1 = users.schema.new({"name": "a"})
        r2 = users.schema.new({"name": "b", "extra": 1})

        with pytest.raises(PreconditionError):
            users.insert_many([r1, r2])
        assert fake_db.statements == []


class TestUpdateDelete:
    def test_update(self, fake_db, users):
        fake_db.rowcount = 1
        record = users.schema.new({"id": 3, "name": "new"})

        assert users.update(record) == 1
        assert fake_db.statements == [
            (
                'UPDATE "users" SET "name" = %s, "age" = %s, "active" = %s, "score" = %s WHERE "id" = %s',
                ["new", None, None, None, 3],
            )
        ]

    def test_update_uuid_record(self, fake_db, accounts):
        record = accounts.schema.new({"id": UUID_999, "label": "x"})

        accounts.update(record)

        assert fake_db.last_params == [None, "x", uuid.UUID(UUID_999).bytes]
        assert record.id == UUID_999

    def test_update_without_id_raises(self, fake_db, users):
        with pytest.raises(DatabaseException):
            users.update(users.schema.new({"name": "x"}))
        assert fake_db.statements == []

    def test_delete(self, fake_db, accounts):
        fake_db.rowcount = 1
        record = accounts.schema.new({"id": UUID_999})

        assert accounts.delete(record) == 1
        assert fake_db.statements == [
            ('DELETE FROM "accounts" WHERE "id" = %s', [uuid.UUID(UUID_999).bytes])
        ]

    def test_delete_without_id_raises(self, users):
        with pytest.raises(DatabaseException):
            users.delete(users.schema.new())


class TestPaginate:
    def test_empty_table(self, fake_db, users):
        fake_db.queue()  # page rows
        fake_db.queue({"aggregate": 0})

        result = users.paginate(page=1, per_page=20)

        assert result["data"] == []
        assert result["meta"] == {
            "total": 0,
            "page": 1,
            "per_page": 20,
            "last_page": 1,
            "has_more_pages": False,
        }

    def test_middle_page(self, fake_db, users):
        fake_db.queue({"id": 11, "name": "k"}, {"id": 12, "name": "l"})
        fake_db.queue({"aggregate": 25})

        result = users.paginate(page=2, per_page=10, where="active = %s", params=[True], order_by="id")

        select_sql, select_params = fake_db.statements[0]
        count_sql, count_params = fake_db.statements[1]
        assert select_sql.endswith("WHERE active = %s ORDER BY id LIMIT %s OFFSET %s")
        assert select_params == [True, 10, 10]
        assert count_params == [True]
        assert "COUNT(*)" in count_sql
        assert [r.id for r in result["data"]] == [11, 12]
        assert result["meta"] == {
            "total": 25,
            "page": 2,
            "per_page": 10,
            "last_page": 3,
            "has_more_pages": True,
        }

    def test_last_page_has_no_more_pages(self, fake_db, users):
        fake_db.queue({"id": 21})
        fake_db.queue({"aggregate": 21})

        meta = users.paginate(page=3, per_page=10)["meta"]

        assert meta["last_page"] == 3
        assert meta["has_more_pages"] is False

    def test_default_per_page_from_settings(self, fake_db, users):
        fake_db.queue()
        fake_db.queue({"aggregate": 0})

        meta = users.paginate()["meta"]

        assert meta["per_page"] == 20
        assert fake_db.statements[0][1] == [20, 0]

    @pytest.mark.parametrize("page,per_page", [(0, 10), (-1, 10), (1, 0), (1, -5), (True, 10)])
    def test_non_positive_arguments_rejected(self, fake_db, users, page, per_page):
        with pytest.raises(PreconditionError):
            users.paginate(page=page, per_page=per_page)
        assert fake_db.statements == []


class TestConfiguration:
    def test_schema_qualified_table_name(self, fake_db, user_schema):
        table = Table(fake_db, "public.users", user_schema)

        table.find_where()

        assert fake_db.last_sql == 'SELECT * FROM "public"."users"'

    @pytest.mark.parametrize("name", ["", "users; DROP TABLE x", "1users", "a-b"])
    def test_invalid_table_name_rejected(self, fake_db, user_schema, name):
        with pytest.raises(DatabaseException):
            Table(fake_db, name, user_schema)

    def test_invalid_column_name_rejected(self, fake_db, users):
        record = users.schema.new({"name": "x", "bad column": 1})

        with pytest.raises(DatabaseException):
            users.insert(record)
        assert fake_db.statements == []
