"""
BeliefStream

Turns a noisy stream of short social-media items into a ranked,
clustered digest, and maintains a persistent ontology of belief axes
updated from evidence deltas.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Immutable records shared by every layer
   - Errors are data: ErrorCode + Error, never bare strings

2. STORAGE (storage/)
   - items.db: items, keyword index, seen ids, full-text index
   - beliefs.db: axes, evidence logs, drift state, alerts, proposals
   - MUST NOT: execute scoring or aggregation logic

3. INGESTION (ingestion/)
   - Responsibility: sanitize, extract keywords, score, dedup, cluster
   - Outputs: persisted Items + CycleReport with a Digest
   - MUST NOT: touch the belief store

4. SERVICES (services/)
   - Embedding service, stance validator, reputation lookup
   - Every external call is bounded and degrades to None

5. BELIEFS (beliefs/)
   - Responsibility: evidence aggregation, drift (CUSUM), redundancy
   - Detectors only append alerts/proposals

6. SURFACES
   - engine.BeliefStreamEngine: single orchestration entry point
   - api/: read-only HTTP view
   - cli: operator commands

CONSTRAINTS ENFORCED:
=====================
- Evidence logs are append-only; axes are never deleted
- Axis score/confidence are a pure function of the evidence log
- Re-running a batch never duplicates stored items
- Explicit errors: every rejected record is reported in the cycle report
"""

from .config import EngineConfig
from .engine import BeliefStreamEngine, BeliefCycleReport

__version__ = "0.1.0"

__all__ = ['EngineConfig', 'BeliefStreamEngine', 'BeliefCycleReport', '__version__']
