from __future__ import annotations

import asyncio
import enum
from typing import Generic, Optional, TypeVar

from mostrador.auth.evaluator import ConditionContext, Decision, PermissionEvaluator
from mostrador.auth.permissions import Action, Resource

T = TypeVar("T")


class RenderState(str, enum.Enum):
    LOADING = "loading"
    ALLOWED = "allowed"
    DENIED = "denied"


class RenderGate(Generic[T]):
    """
    Conditionally render a fragment from the same evaluator the request gate uses.

    - before start() or while the evaluation is in flight: the loading placeholder
    - denied: the fallback (None by default)
    - allowed: the children

    Resolver failures are not denials; render() re-raises them.
    """

    def __init__(
        self,
        evaluator: PermissionEvaluator,
        *,
        user_id: str,
        organization_id: str,
        action: Action,
        resource: Resource,
        resource_id: Optional[str] = None,
        context: Optional[ConditionContext] = None,
        fallback: Optional[T] = None,
        loading: Optional[T] = None,
    ) -> None:
        self._evaluator = evaluator
        self._user_id = user_id
        self._organization_id = organization_id
        self._action = action
        self._resource = resource
        self._resource_id = resource_id
        self._context = context
        self.fallback = fallback
        self.loading = loading
        self._task: Optional[asyncio.Task[Decision]] = None

    def _ensure_task(self) -> "asyncio.Task[Decision]":
        if self._task is None:
            self._task = asyncio.ensure_future(
                self._evaluator.evaluate(
                    self._user_id,
                    self._organization_id,
                    self._action,
                    self._resource,
                    resource_id=self._resource_id,
                    context=self._context,
                )
            )
        return self._task

    def start(self) -> "RenderGate[T]":
        self._ensure_task()
        return self

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def state(self) -> RenderState:
        # A cancelled evaluation never resolved.
        if self._task is None or not self._task.done() or self._task.cancelled():
            return RenderState.LOADING
        decision = self._task.result()
        return RenderState.ALLOWED if decision.allowed else RenderState.DENIED

    def render(self, children: T) -> Optional[T]:
        state = self.state
        if state is RenderState.LOADING:
            return self.loading
        if state is RenderState.ALLOWED:
            return children
        return self.fallback

    async def resolve(self, children: T) -> Optional[T]:
        await self._ensure_task()
        return self.render(children)
