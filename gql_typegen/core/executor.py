"""Query executor: runs client operations and exposes their state.

``QueryExecutor.execute`` returns an ObservableResult at once and runs the
request in the background. The observable moves through three states:

    Pending(provisional)   request outstanding; ``provisional`` holds a
                           cached result when one is available
    Failed(errors)         the request failed; the cache is untouched
    Resolved(value, errors) the typed result, plus any field errors of a
                           partial success

Identical calls (same operation and variables) that overlap share one
request. Cancelling an observable only detaches that caller.

Example:
    async with QueryExecutor(HttpTransport(url)) as executor:
        result = await executor.execute(ALL_USERS)
        if isinstance(result, Resolved):
            print(result.value.users)
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Union

from pydantic import ValidationError

from .artifacts import OperationDescriptor, ResultT
from .cache import NormalizedCache
from .errors import GraphQLError, InvalidVariables, NetworkError, ShapeMismatchError
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pending(Generic[ResultT]):
    provisional: ResultT | None = None


@dataclass(frozen=True)
class Failed:
    errors: tuple[Exception, ...]


@dataclass(frozen=True)
class Resolved(Generic[ResultT]):
    value: ResultT
    errors: tuple[GraphQLError, ...] = ()


State = Union[Pending, Failed, Resolved]
Subscriber = Callable[[State], None]

_TERMINAL = (Failed, Resolved)


@dataclass(eq=False)
class _InFlight:
    """One outstanding request and the observables waiting on it."""
    key: tuple[str, str, str]
    task: "asyncio.Task[State]"
    observers: set["ObservableResult"] = field(default_factory=set)


class ObservableResult(Generic[ResultT]):
    """The caller's view of one executed operation."""

    def __init__(
        self,
        executor: "QueryExecutor",
        descriptor: OperationDescriptor[ResultT],
        variables: Mapping[str, Any],
    ):
        self.descriptor = descriptor
        self.variables = dict(variables)
        self._executor = executor
        self._state: State = Pending()
        self._subscribers: list[Subscriber] = []
        self._settled = asyncio.Event()
        self._request: _InFlight | None = None
        self._cancelled = False

    @property
    def state(self) -> State:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` with the current state and every later one.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)
        callback(self._state)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def wait(self) -> State:
        """Wait for a terminal state (Failed or Resolved) and return it.

        Raises:
            asyncio.CancelledError: If this observable was cancelled
        """
        while not isinstance(self._state, _TERMINAL):
            if self._cancelled:
                raise asyncio.CancelledError(f"{self.descriptor.name} was cancelled")
            self._settled.clear()
            await self._settled.wait()
        return self._state

    def __await__(self):
        return self.wait().__await__()

    def value(self) -> ResultT:
        """The resolved value. Raises the first error if the call failed."""
        if isinstance(self._state, Resolved):
            return self._state.value
        if isinstance(self._state, Failed):
            raise self._state.errors[0]
        raise RuntimeError(f"{self.descriptor.name} is still pending")

    def cancel(self):
        """Detach this caller. A shared request keeps running for other callers."""
        if self._request is not None:
            self._request.observers.discard(self)
            self._request = None
        self._cancelled = True
        self._settled.set()

    def retry(self) -> "ObservableResult[ResultT]":
        """Issue the call again; a no-op while a request is still pending."""
        if isinstance(self._state, Pending) and self._request is not None:
            return self
        self._cancelled = False
        self._executor._attach(self)
        return self

    def _set_state(self, state: State):
        if self._cancelled:
            return
        self._state = state
        if isinstance(state, _TERMINAL):
            self._request = None
        self._settled.set()
        for callback in list(self._subscribers):
            callback(state)

    def __repr__(self) -> str:
        return f"ObservableResult({self.descriptor.name}, {type(self._state).__name__})"


class QueryExecutor:
    """Executes operation descriptors through a transport.

    The executor owns its normalized cache and its transport; construct it
    explicitly and close it (or use ``async with``) when done.
    """

    def __init__(self, transport: Transport, *, cache: NormalizedCache | None = None):
        self.transport = transport
        self.cache = cache if cache is not None else NormalizedCache()
        self._in_flight: dict[tuple[str, str, str], _InFlight] = {}

    async def __aenter__(self) -> "QueryExecutor":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        """Cancel outstanding requests and close the transport."""
        for request in list(self._in_flight.values()):
            request.task.cancel()
        self._in_flight.clear()
        await self.transport.close()

    def execute(
        self,
        descriptor: OperationDescriptor[ResultT],
        variables: Mapping[str, Any] | None = None,
    ) -> ObservableResult[ResultT]:
        """Start an operation; must be called while an event loop is running."""
        observable = ObservableResult(self, descriptor, variables or {})
        self._attach(observable)
        return observable

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _attach(self, observable: ObservableResult):
        descriptor = observable.descriptor
        try:
            variables = self._serialize_variables(descriptor, observable.variables)
        except InvalidVariables as e:
            observable._set_state(Failed((e,)))
            return

        observable._set_state(Pending(self._cached(descriptor, variables)))
        key = (descriptor.name, descriptor.schema_fingerprint, json.dumps(variables, sort_keys=True))
        request = self._in_flight.get(key)
        if request is None:
            task = asyncio.get_running_loop().create_task(self._run(descriptor, variables))
            request = _InFlight(key, task)
            self._in_flight[key] = request
            task.add_done_callback(lambda t: self._finish(request, t))
        else:
            logger.debug("Sharing in-flight request for %s", descriptor.name)
        request.observers.add(observable)
        observable._request = request

    @staticmethod
    def _serialize_variables(
        descriptor: OperationDescriptor, variables: Mapping[str, Any]
    ) -> dict[str, Any]:
        try:
            model = descriptor.variables_model.model_validate(dict(variables))
        except ValidationError as e:
            raise InvalidVariables(
                f"Invalid variables for '{descriptor.name}': {e}", descriptor.name
            ) from e
        return model.model_dump(mode="json", by_alias=True, exclude_unset=True)

    def _cached(self, descriptor: OperationDescriptor, variables: dict[str, Any]) -> Any:
        data = self.cache.read(descriptor, variables)
        if data is None:
            return None
        try:
            return descriptor.result_model.model_validate(data)
        except ValidationError:
            return None

    async def _run(self, descriptor: OperationDescriptor, variables: dict[str, Any]) -> State:
        payload = {
            "operationName": descriptor.name,
            "query": descriptor.document,
            "variables": variables,
            "extensions": {"schemaFingerprint": descriptor.schema_fingerprint},
        }
        try:
            response = await self.transport.send(payload)
        except NetworkError as e:
            logger.warning("Operation %s failed: %s", descriptor.name, e)
            return Failed((e,))

        errors = tuple(GraphQLError.from_dict(e) for e in response.get("errors") or ())
        data = response.get("data")
        if data is None:
            logger.warning("Operation %s returned no data", descriptor.name)
            return Failed(errors or (GraphQLError("Response contains no data"),))
        try:
            value = descriptor.result_model.model_validate(data)
        except ValidationError as e:
            logger.warning("Operation %s returned an unexpected shape", descriptor.name)
            return Failed((ShapeMismatchError(
                f"Response for '{descriptor.name}' does not match the generated result shape: {e}"
            ),) + errors)

        self.cache.merge(descriptor, variables, data, error_paths=[e.path for e in errors if e.path])
        return Resolved(value, errors)

    def _finish(self, request: _InFlight, task: "asyncio.Task[State]"):
        if self._in_flight.get(request.key) is request:
            del self._in_flight[request.key]
        if task.cancelled():
            state: State = Failed((NetworkError(f"Request for '{request.key[0]}' was cancelled"),))
        elif task.exception() is not None:
            state = Failed((task.exception(),))
        else:
            state = task.result()
        for observer in list(request.observers):
            observer._set_state(state)
        request.observers.clear()
