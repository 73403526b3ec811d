"""
Flow Engine - sequential post-extraction workflow execution

Steps run strictly in ``step_order``; each one reads and writes a shared
ExecutionContext through the {{path}} placeholder language.

Entry point: ``docflow.flow_engine.executor.WorkflowExecutor``.
"""
