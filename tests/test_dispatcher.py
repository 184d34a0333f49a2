"""Tests for dispatching operations against bound resolvers."""

import asyncio

import pytest

from gql_typegen.core.binder import bind
from gql_typegen.core.dispatcher import RequestDispatcher, default_resolver
from gql_typegen.core.errors import (
    BindingError,
    InvalidVariables,
    StaleOperation,
    UnknownOperation,
)
from gql_typegen.core.generator import generate
from gql_typegen.core.registry import SchemaRegistry

from conftest import UserResolvers


class TestDispatch:
    """Tests for successful dispatch."""

    @pytest.mark.asyncio
    async def test_all_users(self, dispatcher):
        response = await dispatcher.dispatch("ALL_USERS", {})
        assert response.to_dict() == {
            "data": {"users": [{"name": "A"}, {"name": "B"}]},
            "errors": [],
        }

    @pytest.mark.asyncio
    async def test_variables_and_literal_arguments(self, dispatcher):
        response = await dispatcher.dispatch("UserById", {"id": "1"})
        assert response.data == {"user": {
            "id": "1", "name": "A", "email": "a@example.com",
            "posts": [{"title": "First"}, {"title": "Second"}],
        }}

    @pytest.mark.asyncio
    async def test_nullable_root_field(self, dispatcher):
        response = await dispatcher.dispatch("UserById", {"id": "99"})
        assert response.data == {"user": None}
        assert response.errors == ()

    @pytest.mark.asyncio
    async def test_argument_defaults_apply(self, dispatcher, implementations):
        response = await dispatcher.dispatch("SearchUsers", {"term": "A"})
        assert implementations["Query"].calls == [{"term": "A", "limit": 10, "role": None}]
        assert response.data == {"search": [{"id": "1", "name": "A", "role": "ADMIN"}]}

    @pytest.mark.asyncio
    async def test_explicit_variable_overrides_default(self, dispatcher, implementations):
        await dispatcher.dispatch("SearchUsers", {"term": "B", "limit": 0})
        assert implementations["Query"].calls[0]["limit"] == 0

    @pytest.mark.asyncio
    async def test_mutation_with_input_object(self, dispatcher):
        response = await dispatcher.dispatch(
            "CreateUser", {"input": {"name": "C", "email": "c@example.com"}}
        )
        assert response.data == {"createUser": {"id": "3", "name": "C", "role": "MEMBER"}}

    @pytest.mark.asyncio
    async def test_output_follows_document_order(self):
        registry = SchemaRegistry.load("""
            type Query { slow: String, fast: String, sync: String }
            query Overview { slow fast sync }
        """)
        completed = []

        async def slow(parent):
            await asyncio.sleep(0.02)
            completed.append("slow")
            return "s"

        async def fast(parent):
            completed.append("fast")
            return "f"

        def sync(parent):
            completed.append("sync")
            return "y"

        resolvers = bind(generate(registry).server_contract, {
            "Query": {"slow": slow, "fast": fast, "sync": sync},
        })
        response = await RequestDispatcher(registry, resolvers).dispatch("Overview")
        assert list(response.data) == ["slow", "fast", "sync"]
        assert response.data == {"slow": "s", "fast": "f", "sync": "y"}
        assert completed[-1] == "slow"

    @pytest.mark.asyncio
    async def test_mutation_fields_run_serially(self):
        registry = SchemaRegistry.load("""
            type Query { ok: Boolean }
            type Mutation { first: Int!, second: Int! }
            mutation Both { first second }
        """)
        order = []

        async def first(parent):
            await asyncio.sleep(0.02)
            order.append("first")
            return 1

        async def second(parent):
            order.append("second")
            return 2

        resolvers = bind(generate(registry).server_contract, {
            "Query": {"ok": lambda parent: True},
            "Mutation": {"first": first, "second": second},
        })
        response = await RequestDispatcher(registry, resolvers).dispatch("Both")
        assert response.data == {"first": 1, "second": 2}
        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_enum_literal_arguments(self):
        registry = SchemaRegistry.load("""
            type Query { count(role: Role!): Int! }
            enum Role { ADMIN MEMBER }
            query Admins { count(role: ADMIN) }
            query ByRole($role: Role = MEMBER) { count(role: $role) }
        """)
        seen = []

        def count(parent, *, role):
            seen.append(role)
            return len(seen)

        dispatcher = RequestDispatcher(registry, bind(generate(registry).server_contract, {
            "Query": {"count": count},
        }))
        assert (await dispatcher.dispatch("Admins")).data == {"count": 1}
        assert (await dispatcher.dispatch("ByRole")).data == {"count": 2}
        assert seen == ["ADMIN", "MEMBER"]

    @pytest.mark.asyncio
    async def test_handle_bridge(self, dispatcher):
        result = await dispatcher.handle({
            "operationName": "UserById",
            "query": "query UserById($id: ID!) { user(id: $id) { id name email posts(first: 2) { title } } }",
            "variables": {"id": "2"},
        })
        assert result == {
            "data": {"user": {"id": "2", "name": "B", "email": "b@example.com", "posts": []}},
            "errors": [],
        }


class TestPartialSuccess:
    """Field errors are isolated to their subtree."""

    @pytest.mark.asyncio
    async def test_failing_nullable_field(self, artifacts, implementations, registry):
        class FlakyUsers(UserResolvers):
            def best_friend(self, parent):
                if parent["id"] == "2":
                    raise RuntimeError("friend lookup failed")
                return super().best_friend(parent)

        implementations["User"] = FlakyUsers()
        dispatcher = RequestDispatcher(registry, bind(artifacts.server_contract, implementations))
        response = await dispatcher.dispatch("UsersWithFriends")
        assert response.data == {"users": [
            {"id": "1", "name": "A", "bestFriend": {"name": "B"}},
            {"id": "2", "name": "B", "bestFriend": None},
        ]}
        assert response.to_dict()["errors"] == [
            {"path": ["users", 1, "bestFriend"], "message": "friend lookup failed"},
        ]
        assert isinstance(response.errors[0].original, RuntimeError)

    @pytest.mark.asyncio
    async def test_non_null_error_bubbles_to_nullable_parent(self, artifacts, implementations, registry):
        class BrokenPosts(UserResolvers):
            def posts(self, parent, *, first=None):
                raise LookupError("posts unavailable")

        implementations["User"] = BrokenPosts()
        dispatcher = RequestDispatcher(registry, bind(artifacts.server_contract, implementations))
        response = await dispatcher.dispatch("UserById", {"id": "1"})
        assert response.data == {"user": None}
        assert [e.path for e in response.errors] == [("user", "posts")]

    @pytest.mark.asyncio
    async def test_null_for_non_null_field(self, artifacts, implementations, registry):
        implementations["Query"].user = lambda parent, *, id: {
            "id": id, "name": "Z", "email": None, "role": "ADMIN",
        }
        dispatcher = RequestDispatcher(registry, bind(artifacts.server_contract, implementations))
        response = await dispatcher.dispatch("UserById", {"id": "1"})
        assert response.data == {"user": None}
        assert response.errors[0].path == ("user", "email")
        assert "non-nullable" in response.errors[0].message

    @pytest.mark.asyncio
    async def test_root_non_null_failure_nulls_data(self, artifacts, implementations, registry):
        def users(parent):
            raise RuntimeError("database down")

        implementations["Query"].users = users
        dispatcher = RequestDispatcher(registry, bind(artifacts.server_contract, implementations))
        response = await dispatcher.dispatch("ALL_USERS")
        assert response.data is None
        assert response.to_dict()["errors"] == [{"path": ["users"], "message": "database down"}]

    @pytest.mark.asyncio
    async def test_invalid_enum_value(self, artifacts, implementations, registry):
        implementations["Query"].search = lambda parent, *, term, limit=10, role=None: [
            {"id": "1", "name": "A", "role": "OWNER"},
        ]
        dispatcher = RequestDispatcher(registry, bind(artifacts.server_contract, implementations))
        response = await dispatcher.dispatch("SearchUsers", {"term": "A"})
        assert response.data is None
        assert response.errors[0].path == ("search", 0, "role")
        assert "OWNER" in response.errors[0].message

    @pytest.mark.asyncio
    async def test_scalar_serialization_error(self):
        registry = SchemaRegistry.load("""
            type Query { count: Int, label: String }
            query Q { count label }
        """)
        resolvers = bind(generate(registry).server_contract, {
            "Query": {"count": lambda parent: "many", "label": lambda parent: "ok"},
        })
        response = await RequestDispatcher(registry, resolvers).dispatch("Q")
        assert response.data == {"count": None, "label": "ok"}
        assert response.errors[0].path == ("count",)


class TestRequestErrors:
    """Request-level failures raise OperationError subclasses."""

    @pytest.mark.asyncio
    async def test_unknown_operation(self, dispatcher):
        with pytest.raises(UnknownOperation, match="Unknown operation: Nope"):
            await dispatcher.dispatch("Nope")

    @pytest.mark.asyncio
    async def test_unknown_operation_over_handle(self, dispatcher):
        result = await dispatcher.handle({"operationName": "Nope", "variables": {}})
        assert result == {"data": None, "errors": [{"path": [], "message": "Unknown operation: Nope"}]}

    @pytest.mark.asyncio
    async def test_missing_operation_name(self, dispatcher):
        result = await dispatcher.handle({"query": "{ users { name } }"})
        assert result["data"] is None
        assert "operationName" in result["errors"][0]["message"]

    @pytest.mark.asyncio
    async def test_missing_required_variable(self, dispatcher):
        with pytest.raises(InvalidVariables, match=r"\$id"):
            await dispatcher.dispatch("UserById", {})

    @pytest.mark.asyncio
    async def test_unknown_variable(self, dispatcher):
        with pytest.raises(InvalidVariables, match="unknown variable"):
            await dispatcher.dispatch("ALL_USERS", {"limit": 1})

    @pytest.mark.asyncio
    async def test_invalid_input_object(self, dispatcher):
        with pytest.raises(InvalidVariables, match="email"):
            await dispatcher.dispatch("CreateUser", {"input": {"name": "C"}})

    @pytest.mark.asyncio
    async def test_invalid_enum_variable(self, dispatcher):
        with pytest.raises(InvalidVariables, match="OWNER"):
            await dispatcher.dispatch(
                "CreateUser", {"input": {"name": "C", "email": "c@x", "role": "OWNER"}}
            )

    @pytest.mark.asyncio
    async def test_matching_query_accepted(self, dispatcher, artifacts):
        query = "query ALL_USERS {\n users { name }\n}"
        response = await dispatcher.dispatch("ALL_USERS", query=query)
        assert response.data == {"users": [{"name": "A"}, {"name": "B"}]}
        response = await dispatcher.dispatch(
            "ALL_USERS", query=artifacts.operation("ALL_USERS").document
        )
        assert response.errors == ()

    @pytest.mark.asyncio
    async def test_stale_query_rejected(self, dispatcher):
        with pytest.raises(StaleOperation, match="does not match"):
            await dispatcher.dispatch("ALL_USERS", query="query ALL_USERS { users { name email } }")

    @pytest.mark.asyncio
    async def test_query_invalid_against_schema(self, dispatcher):
        with pytest.raises(StaleOperation, match="not valid"):
            await dispatcher.dispatch("ALL_USERS", query="query ALL_USERS { users { nickname } }")

    @pytest.mark.asyncio
    async def test_schema_fingerprint_mismatch_rejected(self, dispatcher, registry):
        with pytest.raises(StaleOperation, match="regenerate"):
            await dispatcher.dispatch("ALL_USERS", schema_fingerprint="0" * 64)
        response = await dispatcher.dispatch("ALL_USERS", schema_fingerprint=registry.fingerprint)
        assert response.errors == ()

    @pytest.mark.asyncio
    async def test_schema_fingerprint_over_handle(self, dispatcher):
        result = await dispatcher.handle({
            "operationName": "ALL_USERS",
            "extensions": {"schemaFingerprint": "0" * 64},
        })
        assert result["data"] is None
        assert "regenerate" in result["errors"][0]["message"]

    @pytest.mark.asyncio
    async def test_parsed_queries_do_not_accumulate(self, dispatcher, registry):
        for spaces in range(1, 201):
            query = "query ALL_USERS {" + " " * spaces + "users { name } }"
            await dispatcher.dispatch("ALL_USERS", query=query)
        assert len(dispatcher._parsed_queries) <= len(registry.documents())

    def test_resolvers_from_other_schema_rejected(self, resolvers, schema_sdl):
        reloaded = SchemaRegistry.load(schema_sdl.replace("name: String\n", "name: String!\n"))
        with pytest.raises(BindingError, match="different schema"):
            RequestDispatcher(reloaded, resolvers)


class TestDefaultResolver:
    """Tests for the default field accessor."""

    def test_mapping_key(self):
        assert default_resolver({"name": "A"}, "name") == "A"
        assert default_resolver({}, "name") is None

    def test_attribute(self):
        class User:
            name = "A"
            best_friend = "B"

        assert default_resolver(User(), "name") == "A"
        assert default_resolver(User(), "bestFriend") == "B"
        assert default_resolver(User(), "missing") is None

    def test_none_parent(self):
        assert default_resolver(None, "name") is None

