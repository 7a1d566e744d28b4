"""Orchestration core: errors, models, execution, routing and workflows."""
