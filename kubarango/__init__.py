"""
Kubarango - ArangoDB Deployment Operator

Drives ArangoDB deployments on Kubernetes toward their declared spec.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- api: Shared data model (spec, status, plan)
- storage: Versioned Status Store with compare-and-swap
- rotation: Decides how disruptively a member must change
- plan: Builds the plan of corrective actions
- reconcile: Executes the plan one action at a time
- scaling: Keeps the cluster's server counts in sync with the spec
- deployment: Control loops and their supervision
"""

__version__ = "1.0.0"
