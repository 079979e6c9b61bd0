"""
Larder - a ledger-sequenced registry for traditional food-preservation practice.

This package records teachers, classes, certifications, educational resources,
seasons, preservation schedules, scheduled events, techniques, technique steps
and ingredients. Every sub-registry shares one state-management pattern:
- Monotonic integer identities per entity class
- Ownership-gated mutation
- Composite-key relation records
- Free-form status fields on classes and events

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Caller    │────▶│  HTTP API   │────▶│   Call Ledger   │
    └─────────────┘     └──────┬──────┘     └────────┬────────┘
                               │                     │
                               │ reads               ▼
                               │              ┌─────────────┐
                               │              │   Applier   │
                               │              └──────┬──────┘
                               ▼                     ▼
                        ┌─────────────────────────────────────┐
                        │   SQLite (counters/records/relations)│
                        └─────────────────────────────────────┘

Invariants:
    - The ledger defines the order in which calls are applied
    - Every call carries an explicit caller identity
    - Failed calls write nothing to the registry tables
"""

__version__ = "0.3.0"
