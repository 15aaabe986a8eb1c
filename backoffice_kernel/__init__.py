"""
Back-Office Kernel

Shared foundation for the lifecycle engine:
- Declarative persistence base and engine/session management
- Frozen domain value objects (entities, events, workflows, clock)
- Optimistic-lock entity store and append-only event log
- Typed exceptions and structured JSON logging
"""

__version__ = "0.1.0"
