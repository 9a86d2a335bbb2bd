"""
Workflow state manager adapter.

Synchronous: the state machine is in-memory, so every method runs the
synchronous template and publishes with synchronous emission.

Query methods are declared raising; mutations return error envelopes.
"""

from typing import Any

from knoa_core.adapters.base import BaseAdapter
from knoa_core.adapters.schema import Param, ParamSchema, is_mapping, is_str
from knoa_core.ports.managers import Entity
from knoa_core.runtime.context import OperationContext

STATE = Param(checks=(is_str(),))
DATA = Param(required=False, checks=(is_mapping(),))

_SET = ParamSchema(state=STATE, data=DATA)
_TRANSITION = ParamSchema(target_state=STATE, data=DATA)
_CAN_TRANSITION = ParamSchema(target_state=STATE)


class StateManagerAdapter(BaseAdapter):
    """
    Wraps a StateManager.

    Events:
        state:state_changed, state:state_transition
    """

    component = "state"

    def get_current_state(self, context: OperationContext | None = None) -> Any:
        return self._execute(
            "get_current_state",
            {},
            self.manager.get_current_state,
            context=context,
            raises=True,
        )

    def set_state(
        self,
        state: str,
        data: Entity | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """Force the workflow state and publish ``state:state_changed``."""
        data = data or {}
        seen: dict[str, Any] = {}

        def invoke() -> Any:
            seen["previous"] = self.manager.get_current_state()
            return self.manager.set_state(state, data)

        return self._execute(
            "set_state",
            {"state": state, "data": data},
            invoke,
            schema=_SET,
            action="state_changed",
            payload=lambda result: {
                **data,
                "state": state,
                "previousState": seen["previous"],
                "sessionId": data.get("sessionId"),
            },
            context=context,
        )

    def transition_to(
        self,
        target_state: str,
        data: Entity | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """
        Move along an allowed transition and publish ``state:state_transition``.

        Illegal transitions surface as a ``state`` error envelope.
        """
        data = data or {}
        seen: dict[str, Any] = {}

        def invoke() -> Any:
            seen["previous"] = self.manager.get_current_state()
            return self.manager.transition_to(target_state, data)

        return self._execute(
            "transition_to",
            {"target_state": target_state, "data": data},
            invoke,
            schema=_TRANSITION,
            action="state_transition",
            payload=lambda result: {
                **data,
                "fromState": seen["previous"],
                "toState": target_state,
                "sessionId": data.get("sessionId"),
            },
            context=context,
        )

    def can_transition_to(
        self, target_state: str, context: OperationContext | None = None
    ) -> Any:
        return self._execute(
            "can_transition_to",
            {"target_state": target_state},
            lambda: self.manager.can_transition_to(target_state),
            schema=_CAN_TRANSITION,
            context=context,
        )

    def get_state_history(self, context: OperationContext | None = None) -> Any:
        return self._execute(
            "get_state_history",
            {},
            self.manager.get_state_history,
            context=context,
            raises=True,
        )

    def get_previous_state(self, context: OperationContext | None = None) -> Any:
        return self._execute(
            "get_previous_state",
            {},
            self.manager.get_previous_state,
            context=context,
            raises=True,
        )
