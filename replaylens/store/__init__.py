from replaylens.store.workflow_store import WorkflowStore

__all__ = ["WorkflowStore"]
