"""
PM Core

Task aggregation across project-management providers, with a TTL task
cache and name -> ID resolution of workspaces, projects, sections and
custom fields.
"""

__version__ = "0.1.0"
