"""Click commands for depsync."""
