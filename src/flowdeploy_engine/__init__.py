"""FlowDeploy-Engine: per-tenant workflow and credential reconciliation."""

from flowdeploy_engine.resilience.breaker import CircuitBreaker, CircuitState
from flowdeploy_engine.resilience.client import ResilientClient
from flowdeploy_engine.resilience.policy import RetryPolicy
from flowdeploy_engine.templates.injector import TemplateInjector
from flowdeploy_engine.workflows.reconciler import WorkflowReconciler

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "ResilientClient",
    "RetryPolicy",
    "TemplateInjector",
    "WorkflowReconciler",
]
__version__ = "0.1.0"
