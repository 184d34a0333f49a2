"""Tests for the normalized client cache."""

import pytest

from gql_typegen.core.cache import REF_KEY, NormalizedCache

USER_1 = {
    "id": "1", "name": "A", "email": "a@example.com",
    "posts": [{"title": "First"}, {"title": "Second"}],
}


@pytest.fixture
def cache():
    return NormalizedCache()


class TestMergeAndRead:
    """Tests for writing responses and reading them back."""

    def test_read_back(self, cache, artifacts):
        descriptor = artifacts.operation("UserById")
        cache.merge(descriptor, {"id": "1"}, {"user": USER_1})
        assert cache.read(descriptor, {"id": "1"}) == {"user": USER_1}

    def test_read_unknown_operation(self, cache, artifacts):
        assert cache.read(artifacts.operation("UserById"), {"id": "1"}) is None

    def test_variables_are_part_of_the_key(self, cache, artifacts):
        descriptor = artifacts.operation("UserById")
        cache.merge(descriptor, {"id": "1"}, {"user": USER_1})
        assert cache.read(descriptor, {"id": "2"}) is None

    def test_root_key_ignores_variable_order(self, artifacts):
        descriptor = artifacts.operation("SearchUsers")
        assert (
            NormalizedCache.root_key(descriptor, {"term": "A", "limit": 1})
            == NormalizedCache.root_key(descriptor, {"limit": 1, "term": "A"})
        )

    def test_objects_stored_by_identity(self, cache, artifacts):
        cache.merge(artifacts.operation("UserById"), {"id": "1"}, {"user": USER_1})
        assert cache.get("User:1")["name"] == "A"
        assert cache.get('UserById({"id": "1"})') == {"user": {REF_KEY: "User:1"}}

    def test_objects_without_identity_stored_by_path(self, cache, artifacts):
        cache.merge(artifacts.operation("ALL_USERS"), {}, {"users": [{"name": "A"}]})
        assert cache.get("ALL_USERS({}).users.0") == {"name": "A"}
        cache.merge(artifacts.operation("UserById"), {"id": "1"}, {"user": USER_1})
        assert cache.get("User:1.posts.1") == {"title": "Second"}

    def test_null_results(self, cache, artifacts):
        descriptor = artifacts.operation("UserById")
        cache.merge(descriptor, {"id": "9"}, {"user": None})
        assert cache.read(descriptor, {"id": "9"}) == {"user": None}

    def test_custom_identity_fields(self, artifacts):
        cache = NormalizedCache(id_fields=("email", "id"))
        cache.merge(artifacts.operation("UserById"), {"id": "1"}, {"user": USER_1})
        assert "User:a@example.com" in cache


class TestSharedIdentity:
    """A response updates every cached result containing the same object."""

    def test_update_visible_to_other_operation(self, cache, artifacts):
        by_id = artifacts.operation("UserById")
        cache.merge(by_id, {"id": "1"}, {"user": USER_1})
        cache.merge(artifacts.operation("UsersWithFriends"), {}, {"users": [
            {"id": "1", "name": "Renamed", "bestFriend": {"name": "B"}},
        ]})
        assert cache.read(by_id, {"id": "1"})["user"]["name"] == "Renamed"
        assert cache.read(by_id, {"id": "1"})["user"]["email"] == "a@example.com"

    def test_missing_field_is_a_miss(self, cache, artifacts):
        by_id = artifacts.operation("UserById")
        cache.merge(by_id, {"id": "1"}, {"user": {"id": "1", "name": "A", "email": "a@example.com"}})
        assert "posts" not in cache.get("User:1")
        assert cache.read(by_id, {"id": "1"}) is None

    def test_errored_null_keeps_cached_value(self, cache, artifacts):
        by_id = artifacts.operation("UserById")
        cache.merge(by_id, {"id": "1"}, {"user": USER_1})
        cache.merge(
            artifacts.operation("UsersWithFriends"),
            {},
            {"users": [{"id": "1", "name": None, "bestFriend": None}]},
            error_paths=[["users", 0, "name"]],
        )
        user = cache.get("User:1")
        assert user["name"] == "A"
        assert user["bestFriend"] is None
        assert cache.read(by_id, {"id": "1"})["user"]["name"] == "A"

    def test_null_above_an_error_is_not_written(self, cache, artifacts):
        by_id = artifacts.operation("UserById")
        cache.merge(by_id, {"id": "1"}, {"user": USER_1})
        cache.merge(by_id, {"id": "1"}, {"user": None}, error_paths=[["user", "email"]])
        assert cache.read(by_id, {"id": "1"}) == {"user": USER_1}


class TestSnapshots:
    """Tests for copy-on-write snapshots."""

    def test_get_returns_a_copy(self, cache, artifacts):
        descriptor = artifacts.operation("UserById")
        cache.merge(descriptor, {"id": "1"}, {"user": USER_1})
        before = cache.get("User:1")
        cache.merge(descriptor, {"id": "1"}, {"user": {**USER_1, "name": "Z"}})
        assert before["name"] == "A"
        assert cache.get("User:1")["name"] == "Z"

    def test_keys_len_and_clear(self, cache, artifacts):
        cache.merge(artifacts.operation("ALL_USERS"), {}, {"users": [{"name": "A"}, {"name": "B"}]})
        assert len(cache) == 3
        assert sorted(cache.keys()) == ["ALL_USERS({})", "ALL_USERS({}).users.0", "ALL_USERS({}).users.1"]
        cache.clear()
        assert len(cache) == 0
        assert cache.get("ALL_USERS({})") is None
