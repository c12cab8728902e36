"""
Finance DSS - Source Package

Decision-support core of a personal finance backend: a model-based
management subsystem (registry, dependency resolver, result cache,
orchestrator) and the AHP goal prioritization engine that runs on it.

DESIGN PRINCIPLES:
1. Models are plug-ins behind one contract
2. Dependencies are resolved, never hand-ordered
3. Fail early, fail visibly
4. Every execution is auditable
5. Cache backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance DSS Team"
