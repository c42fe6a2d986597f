"""
Taskflow Kernel - task approval workflow engine

Configurable multi-step approval of task estimates with:
- Role-gated step actions (approve, reject, send back, request change)
- Value-copied step snapshots per workflow instance
- Append-only action audit log
- Transactional state changes with in-app notifications
"""

__version__ = "0.1.0"
