"""FlowBridge: a console client for a shared kanban task server with local work timers."""

__version__ = "0.1.0"
