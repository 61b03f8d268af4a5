"""AI-assisted workflow generation pipeline control.

This package implements the in-memory control logic for the workflow
creation wizard, providing:
- A guarded state machine for the describe, clarify, confirm, collect
  credentials, build, validate, ready sequence
- Transition observers for logging and Prometheus metrics
- A session registry and HTTP driver for UI collaborators
"""
