"""Service orchestration layer: coordinates multi-service workflows.

Modules:
- extraction_pipeline: Runs one uploaded document through rasterization,
  per-page model extraction, response recovery and cleanup.
"""
