"""
Test Suite

Tests for the portfolio reminder & escalation service.

Structure:
    tests/
    ├── __init__.py                 # This file
    ├── conftest.py                 # Pytest fixtures (mongomock-backed stores)
    ├── factories.py                # Model factories and fake collaborators
    ├── test_evaluator.py           # Trigger windows
    ├── test_state_tracker.py       # Dedup gate, CAS, acknowledgement
    ├── test_recipient_resolver.py  # Recipients and the Mongo directory
    ├── test_composer.py            # Templates and notification types
    ├── test_dispatcher.py          # Fan-out, retries, backoff
    ├── test_engine_sweep.py        # End-to-end sweeps and escalation
    ├── test_rule_service.py        # Rule validation and lifecycle
    ├── test_channel_transports.py  # Webhook transports
    ├── test_sweep_scheduler.py     # APScheduler job wrapper
    ├── test_logging.py             # JSON log lines and correlation ids
    ├── test_settings.py            # Settings validation
    ├── test_mongo_engine.py        # build_engine over Mongo repositories
    └── test_api.py                 # HTTP surface

To run tests:
    pytest backend/tests/
"""
