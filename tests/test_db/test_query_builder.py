"""Tests for QueryBuilder compilation, validation and execution."""

from __future__ import annotations

import pytest

from recordkit.db.query import QueryBuilder
from recordkit.exceptions import InvalidQueryError, QueryError


def _users(db) -> QueryBuilder:
    return QueryBuilder(db, "users")


def _seed_users(db, count: int = 3) -> list[int]:
    return [
        db.insert("users", {"name": f"User {i}", "email": f"u{i}@example.com", "credits": i * 10})
        for i in range(1, count + 1)
    ]


# ── Compilation ────────────────────────────────────────────────────────────────

class TestCompilation:
    def test_bare_select(self, in_memory_db):
        assert _users(in_memory_db).to_sql() == "SELECT * FROM users"
        assert _users(in_memory_db).get_bindings() == []

    def test_select_columns_varargs_and_list(self, in_memory_db):
        assert _users(in_memory_db).select("id", "name").to_sql() == "SELECT id, name FROM users"
        assert _users(in_memory_db).select(["id", "email"]).to_sql() == "SELECT id, email FROM users"

    def test_two_argument_where_means_equals(self, in_memory_db):
        q = _users(in_memory_db).where("email", "a@b.c")
        assert q.to_sql() == "SELECT * FROM users WHERE email = ?"
        assert q.get_bindings() == ["a@b.c"]

    def test_or_where_has_no_leading_boolean(self, in_memory_db):
        q = _users(in_memory_db).where("a", 1).or_where("b", 2)
        assert "WHERE a = ? OR b = ?" in q.to_sql()
        assert q.get_bindings() == [1, 2]

    def test_leading_or_is_stripped(self, in_memory_db):
        q = _users(in_memory_db).or_where("a", 1).where("b", 2)
        assert q.to_sql() == "SELECT * FROM users WHERE a = ? AND b = ?"

    def test_operator_is_normalized(self, in_memory_db):
        q = _users(in_memory_db).where("name", "like", "%ada%")
        assert q.to_sql() == "SELECT * FROM users WHERE name LIKE ?"

    def test_mapping_where_adds_one_predicate_per_key(self, in_memory_db):
        q = _users(in_memory_db).where({"name": "Ada", "credits": 5})
        assert q.to_sql() == "SELECT * FROM users WHERE name = ? AND credits = ?"
        assert q.get_bindings() == ["Ada", 5]

    def test_where_in(self, in_memory_db):
        q = _users(in_memory_db).where_in("id", [1, 2, 3])
        assert q.to_sql() == "SELECT * FROM users WHERE id IN (?, ?, ?)"
        assert q.get_bindings() == [1, 2, 3]

    def test_where_not_in_places_not_before_in(self, in_memory_db):
        q = _users(in_memory_db).where_not_in("id", [1, 2, 3])
        assert q.to_sql() == "SELECT * FROM users WHERE id NOT IN (?, ?, ?)"
        assert q.get_bindings() == [1, 2, 3]

    def test_or_where_in_variants(self, in_memory_db):
        q = _users(in_memory_db).where("a", 1).or_where_in("b", (2,)).or_where_not_in("c", (3, 4))
        assert q.to_sql() == "SELECT * FROM users WHERE a = ? OR b IN (?) OR c NOT IN (?, ?)"
        assert q.get_bindings() == [1, 2, 3, 4]

    def test_where_between(self, in_memory_db):
        q = _users(in_memory_db).where_between("credits", (5, 50))
        assert q.to_sql() == "SELECT * FROM users WHERE credits BETWEEN ? AND ?"
        assert q.get_bindings() == [5, 50]

    def test_where_not_between(self, in_memory_db):
        q = _users(in_memory_db).where_not_between("credits", [5, 50])
        assert q.to_sql() == "SELECT * FROM users WHERE credits NOT BETWEEN ? AND ?"

    def test_null_predicates_bind_nothing(self, in_memory_db):
        q = _users(in_memory_db).where_null("password").or_where_not_null("remember_token")
        assert q.to_sql() == "SELECT * FROM users WHERE password IS NULL OR remember_token IS NOT NULL"
        assert q.get_bindings() == []

    def test_where_none_becomes_is_null(self, in_memory_db):
        assert _users(in_memory_db).where("password", None).to_sql().endswith("password IS NULL")
        q = _users(in_memory_db).where("password", "!=", None)
        assert q.to_sql().endswith("password IS NOT NULL")
        assert q.get_bindings() == []

    def test_order_limit_offset(self, in_memory_db):
        q = _users(in_memory_db).order_by("name").order_by_desc("id").limit(10).offset(20)
        assert q.to_sql() == "SELECT * FROM users ORDER BY name ASC, id DESC LIMIT 10 OFFSET 20"

    def test_offset_without_limit(self, in_memory_db):
        assert _users(in_memory_db).offset(5).to_sql() == "SELECT * FROM users LIMIT -1 OFFSET 5"

    def test_for_page(self, in_memory_db):
        assert _users(in_memory_db).for_page(3, 10).to_sql().endswith("LIMIT 10 OFFSET 20")

    def test_group_by_having_bindings_follow_where(self, in_memory_db):
        q = (
            _users(in_memory_db)
            .select("subscription_status", "COUNT(*) AS n")
            .where("credits", ">", 0)
            .group_by("subscription_status")
            .having("n", ">=", 2)
        )
        assert q.to_sql() == (
            "SELECT subscription_status, COUNT(*) AS n FROM users WHERE credits > ? "
            "GROUP BY subscription_status HAVING n >= ?"
        )
        assert q.get_bindings() == [0, 2]

    def test_placeholder_count_matches_bindings(self, in_memory_db):
        q = (
            _users(in_memory_db)
            .where("name", "Ada")
            .where_in("id", [1, 2, 3, 4])
            .or_where_between("credits", (1, 9))
            .where_null("password")
            .where_not_in("email", ["x@y.z"])
            .where("credits", "<>", 3)
        )
        bindings = q.get_bindings()
        assert q.to_sql().count("?") == len(bindings)
        assert bindings == ["Ada", 1, 2, 3, 4, 1, 9, "x@y.z", 3]

    def test_clone_is_independent(self, in_memory_db):
        original = _users(in_memory_db).where("a", 1)
        copy = original.clone().where("b", 2).order_by("id")
        assert original.to_sql() == "SELECT * FROM users WHERE a = ?"
        assert copy.to_sql() == "SELECT * FROM users WHERE a = ? AND b = ? ORDER BY id ASC"

    def test_where_group_parenthesizes_nested_predicates(self, in_memory_db):
        q = (
            _users(in_memory_db)
            .where("credits", ">", 0)
            .where_group(lambda g: g.where("name", "Ada").or_where_in("id", [1, 2]))
            .or_where_group(lambda g: g.where_null("email"))
        )
        assert q.to_sql() == (
            "SELECT * FROM users WHERE credits > ? AND (name = ? OR id IN (?, ?)) "
            "OR (email IS NULL)"
        )
        assert q.get_bindings() == [0, "Ada", 1, 2]

    def test_empty_group_adds_nothing(self, in_memory_db):
        q = _users(in_memory_db).where("a", 1).where_group(lambda g: None)
        assert q.to_sql() == "SELECT * FROM users WHERE a = ?"

    def test_group_wheres_wraps_or_chain(self, in_memory_db):
        q = _users(in_memory_db).where("a", 1).or_where("b", 2)
        assert q.has_or_where()
        q.group_wheres().where("c", 3)
        assert q.to_sql() == "SELECT * FROM users WHERE (a = ? OR b = ?) AND c = ?"
        assert q.get_bindings() == [1, 2, 3]

    def test_leading_or_does_not_count_as_or_chain(self, in_memory_db):
        assert not _users(in_memory_db).or_where("a", 1).where("b", 2).has_or_where()

    def test_where_like_with_escape(self, in_memory_db):
        q = _users(in_memory_db).where_like("name", "%a\\_b%", escape="\\")
        assert q.to_sql() == "SELECT * FROM users WHERE name LIKE ? ESCAPE '\\'"
        assert q.get_bindings() == ["%a\\_b%"]


# ── Validation ─────────────────────────────────────────────────────────────────

class TestValidation:
    @pytest.mark.parametrize("escape", ["", "ab", "'"])
    def test_like_escape_must_be_one_safe_character(self, in_memory_db, escape):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).where_like("name", "%x%", escape=escape)

    def test_empty_in_list_raises(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).where_in("id", [])

    def test_between_needs_two_values(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).where_between("credits", (1, 2, 3))

    def test_unknown_operator_raises(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).where("id", "=~", 1)

    def test_unknown_boolean_raises(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).where("id", "=", 1, "xor")

    def test_ordering_comparison_with_none_raises(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).where("credits", ">", None)

    def test_where_without_value_raises(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).where("credits")

    @pytest.mark.parametrize("value", [-1, 1.5, True])
    def test_limit_must_be_non_negative_int(self, in_memory_db, value):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).limit(value)

    def test_for_page_rejects_zero(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).for_page(0)

    def test_invalid_query_error_is_value_error(self, in_memory_db):
        with pytest.raises(ValueError):
            _users(in_memory_db).where_in("id", ())


# ── Execution ──────────────────────────────────────────────────────────────────

class TestExecution:
    def test_get_returns_dict_rows(self, in_memory_db):
        _seed_users(in_memory_db)
        rows = _users(in_memory_db).where("credits", ">=", 20).order_by("id").get()
        assert [r["email"] for r in rows] == ["u2@example.com", "u3@example.com"]

    def test_first_does_not_mutate_query(self, in_memory_db):
        _seed_users(in_memory_db)
        q = _users(in_memory_db).order_by_desc("credits")
        assert q.first()["credits"] == 30
        assert "LIMIT" not in q.to_sql()

    def test_first_on_empty_table(self, in_memory_db):
        assert _users(in_memory_db).first() is None

    def test_value_and_pluck(self, in_memory_db):
        _seed_users(in_memory_db)
        assert _users(in_memory_db).where("credits", 20).value("name") == "User 2"
        assert _users(in_memory_db).order_by("id").pluck("credits") == [10, 20, 30]

    def test_exists(self, in_memory_db):
        assert not _users(in_memory_db).exists()
        _seed_users(in_memory_db, 1)
        assert _users(in_memory_db).where("email", "u1@example.com").exists()

    def test_aggregates_keep_where_bindings(self, in_memory_db):
        _seed_users(in_memory_db)
        q = _users(in_memory_db).where("credits", ">", 10)
        assert q.count() == 2
        assert q.sum("credits") == 50
        assert q.avg("credits") == 25
        assert q.min("credits") == 20
        assert q.max("credits") == 30

    def test_aggregates_on_empty_set(self, in_memory_db):
        assert _users(in_memory_db).count() == 0
        assert _users(in_memory_db).sum("credits") == 0
        assert _users(in_memory_db).max("credits") is None

    def test_aggregate_ignores_limit(self, in_memory_db):
        _seed_users(in_memory_db)
        assert _users(in_memory_db).limit(1).count() == 3

    def test_grouped_count_counts_groups(self, in_memory_db):
        _seed_users(in_memory_db)
        in_memory_db.update("users", {"subscription_status": "active"}, "id = ?", (1,))
        q = _users(in_memory_db).select("subscription_status").group_by("subscription_status")
        assert q.count() == 2

    def test_unknown_aggregate_raises(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).aggregate("median", "credits")

    def test_update_binds_set_before_where(self, in_memory_db):
        _seed_users(in_memory_db)
        affected = _users(in_memory_db).where("credits", ">=", 20).update({"credits": 0})
        assert affected == 2
        assert _users(in_memory_db).where("credits", 0).count() == 2

    def test_update_without_values_raises(self, in_memory_db):
        with pytest.raises(InvalidQueryError):
            _users(in_memory_db).update({})

    def test_delete(self, in_memory_db):
        _seed_users(in_memory_db)
        assert _users(in_memory_db).where_in("id", [1, 2]).delete() == 2
        assert _users(in_memory_db).count() == 1

    def test_insert_returns_id(self, in_memory_db):
        new_id = _users(in_memory_db).insert({"name": "Ada", "email": "ada@example.com"})
        assert _users(in_memory_db).where("id", new_id).value("name") == "Ada"

    def test_bool_values_are_bound_as_integers(self, in_memory_db):
        in_memory_db.insert("credit_packs", {"name": "A", "credits": 1, "price": 1.0, "is_active": False})
        assert QueryBuilder(in_memory_db, "credit_packs").where("is_active", False).count() == 1

    def test_driver_error_becomes_query_error(self, in_memory_db):
        with pytest.raises(QueryError):
            _users(in_memory_db).where("no_such_column", 1).get()
