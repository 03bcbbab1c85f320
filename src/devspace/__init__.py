"""Per-branch development workspace orchestration.

This package provisions and tears down isolated development workspaces
backed by linked git working trees, providing:
- A configuration cache with mtime-polling invalidation
- A dependency-aware concurrent operation coordinator
- A working-tree lifecycle manager with fallback and rollback
- Workspace conflict resolution (silent, interactive, fail-fast)
- Structured progress events for a separate presentation layer
"""
