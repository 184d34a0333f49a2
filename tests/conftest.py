"""Shared fixtures: a small user/post schema with resolvers."""

import pytest

from gql_typegen.core.binder import bind
from gql_typegen.core.dispatcher import RequestDispatcher
from gql_typegen.core.generator import generate
from gql_typegen.core.registry import SchemaRegistry

SCHEMA_SDL = '''
type Query {
  users: [User!]!
  user(id: ID!): User
  search(term: String!, limit: Int = 10, role: Role): [User!]!
}

type Mutation {
  createUser(input: CreateUserInput!): User!
}

"""A registered user."""
type User {
  id: ID!
  name: String
  email: String!
  role: Role!
  posts(first: Int): [Post!]!
  bestFriend: User
}

type Post {
  id: ID!
  title: String!
}

enum Role {
  ADMIN
  MEMBER
}

input CreateUserInput {
  name: String!
  email: String!
  role: Role = MEMBER
  tags: [String!]
}

query ALL_USERS {
  users {
    name
  }
}

query UserById($id: ID!) {
  user(id: $id) {
    id
    name
    email
    posts(first: 2) {
      title
    }
  }
}

query SearchUsers($term: String!, $limit: Int) {
  search(term: $term, limit: $limit) {
    id
    name
    role
  }
}

query UsersWithFriends {
  users {
    id
    name
    bestFriend {
      name
    }
  }
}

mutation CreateUser($input: CreateUserInput!) {
  createUser(input: $input) {
    id
    name
    role
  }
}
'''

USERS = [
    {"id": "1", "name": "A", "email": "a@example.com", "role": "ADMIN"},
    {"id": "2", "name": "B", "email": "b@example.com", "role": "MEMBER"},
]

POSTS = {
    "1": [{"id": "p1", "title": "First"}, {"id": "p2", "title": "Second"}, {"id": "p3", "title": "Third"}],
    "2": [],
}


class QueryResolvers:
    def __init__(self):
        self.calls = []

    def users(self, parent):
        return USERS

    def user(self, parent, *, id):
        return next((u for u in USERS if u["id"] == id), None)

    async def search(self, parent, *, term, limit=10, role=None):
        self.calls.append({"term": term, "limit": limit, "role": role})
        matches = [u for u in USERS if term in u["name"] and (role is None or u["role"] == role)]
        return matches[:limit]


class UserResolvers:
    def posts(self, parent, *, first=None):
        posts = POSTS[parent["id"]]
        return posts[:first] if first is not None else posts

    def best_friend(self, parent):
        return USERS[1] if parent["id"] == "1" else None


def create_user(parent, *, input):
    return {"id": "3", "email": input["email"], "name": input["name"], "role": input["role"]}


@pytest.fixture
def registry():
    return SchemaRegistry.load(SCHEMA_SDL)


@pytest.fixture
def artifacts(registry):
    return generate(registry)


@pytest.fixture
def implementations():
    return {
        "Query": QueryResolvers(),
        "Mutation": {"createUser": create_user},
        "User": UserResolvers(),
    }


@pytest.fixture
def resolvers(artifacts, implementations):
    return bind(artifacts.server_contract, implementations)


@pytest.fixture
def dispatcher(registry, resolvers):
    return RequestDispatcher(registry, resolvers)


@pytest.fixture
def schema_sdl():
    return SCHEMA_SDL
