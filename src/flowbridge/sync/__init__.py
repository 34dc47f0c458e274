"""HTTP gateway to the task server."""
