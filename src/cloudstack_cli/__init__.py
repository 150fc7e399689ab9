"""cloudstack-cli - manage virtual machines on a CloudStack control plane.

Philosophy:
- Fail closed: no mutating call is made with an unresolved name
- Failures of one VM never cancel its siblings in a batch
- Brick architecture (resolver, orchestrator and gateway are self-contained)

The core resolves human-readable names (zones, templates, offerings,
networks, ...) into control-plane ids and drives batches of asynchronous
jobs to completion under a concurrency bound.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
