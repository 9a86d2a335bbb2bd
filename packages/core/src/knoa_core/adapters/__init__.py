"""
knoa Core Adapters - uniform wrappers around domain managers.

Usage:
    from knoa_core.adapters import TaskManagerAdapter
    from knoa_core.runtime.core import Core

    adapter = TaskManagerAdapter(task_manager, core=Core.build())
    task = await adapter.create_task({"title": "write the parser"})

Architecture:
    - BaseAdapter: context, validation, invocation, publication, error routing
    - ParamSchema: declarative argument checks per method
    - One adapter per manager port; IntegrationManagerAdapter wraps the
      orchestrator that drives the other four
"""

from knoa_core.adapters.base import BaseAdapter, component_for, summarize_arguments
from knoa_core.adapters.feedback import FeedbackManagerAdapter
from knoa_core.adapters.integration import IntegrationManagerAdapter
from knoa_core.adapters.schema import (
    Check,
    Param,
    ParamSchema,
    any_of,
    in_range,
    is_int,
    is_mapping,
    is_number,
    is_str,
    matches,
    one_of,
)
from knoa_core.adapters.session import SessionManagerAdapter
from knoa_core.adapters.state import StateManagerAdapter
from knoa_core.adapters.task import TaskManagerAdapter

__all__ = [
    # Base
    "BaseAdapter",
    "component_for",
    "summarize_arguments",
    # Schema
    "Check",
    "Param",
    "ParamSchema",
    "is_str",
    "is_mapping",
    "is_int",
    "is_number",
    "matches",
    "one_of",
    "in_range",
    "any_of",
    # Adapters
    "TaskManagerAdapter",
    "SessionManagerAdapter",
    "FeedbackManagerAdapter",
    "StateManagerAdapter",
    "IntegrationManagerAdapter",
]
