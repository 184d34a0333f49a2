#!/usr/bin/env python3
"""Demonstration of a full in-process round trip.

This script shows how to:
1. Load a schema and its operations into a registry
2. Generate the resolver contract and client artifacts
3. Bind resolvers and dispatch requests
4. Execute typed operations through the query executor

Everything runs in one process through LocalTransport; swap in
HttpTransport(url) to talk to a real server.
"""

import asyncio

from gql_typegen.core import (
    LocalTransport,
    QueryExecutor,
    RequestDispatcher,
    Resolved,
    SchemaRegistry,
    bind,
    generate,
)

SCHEMA = '''
type Query {
  books: [Book!]!
  book(id: ID!): Book
}

type Book {
  id: ID!
  title: String!
  author: String
}

query AllBooks {
  books { id title }
}

query BookById($id: ID!) {
  book(id: $id) { id title author }
}
'''

BOOKS = [
    {"id": "1", "title": "Dune", "author": "Frank Herbert"},
    {"id": "2", "title": "Solaris", "author": "Stanislaw Lem"},
]


class QueryResolvers:
    def books(self, parent):
        return BOOKS

    async def book(self, parent, *, id):
        await asyncio.sleep(0.01)
        return next((b for b in BOOKS if b["id"] == id), None)


async def main():
    print("=== Local Round Trip Demo ===\n")

    print("1. Loading schema...")
    registry = SchemaRegistry.load(SCHEMA)
    print(f"   {len(registry.object_types())} object types, {len(registry.documents())} operations")
    print(f"   Fingerprint: {registry.fingerprint[:12]}")

    print("\n2. Generating artifacts...")
    artifacts = generate(registry)
    print(f"   Resolvers needed: {', '.join(artifacts.server_contract.paths())}")
    print(f"   Client operations: {', '.join(artifacts.client_artifacts)}")

    print("\n3. Binding resolvers...")
    resolvers = bind(artifacts.server_contract, {"Query": QueryResolvers()})
    dispatcher = RequestDispatcher(registry, resolvers)

    print("\n4. Executing operations...")
    async with QueryExecutor(LocalTransport(dispatcher)) as executor:
        state = await executor.execute(artifacts.operation("AllBooks"))
        if isinstance(state, Resolved):
            for book in state.value.books:
                print(f"   {book.id}: {book.title}")

        # Two identical calls share one request
        first = executor.execute(artifacts.operation("BookById"), {"id": "2"})
        second = executor.execute(artifacts.operation("BookById"), {"id": "2"})
        print(f"   In flight: {executor.in_flight}")
        results = await asyncio.gather(first, second)
        print(f"   Shared result: {results[0] is results[1]}")
        print(f"   {results[0].value.book.title} by {results[0].value.book.author}")

        # The cache answers provisionally while the network request runs
        again = executor.execute(artifacts.operation("BookById"), {"id": "2"})
        print(f"   Provisional: {again.state.provisional.book.title}")
        await again

    print("\n=== Demo Complete ===")


if __name__ == "__main__":
    asyncio.run(main())
