"""Intake services: session lifecycle, limits, tracker access and the workflow.

Handlers reach these through ``services.container.get_container()`` so the
engine and tracker client are only built on first use.
"""
