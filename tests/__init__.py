"""
Test suite for Reel Flow.

This package contains all tests for the reel_flow runtime.

Test Structure:
- test_models.py: Flow document parsing and normalization
- test_navigation.py: Navigation resolver, decisions and slide locks
- test_triggers.py: Gamification trigger bus
- test_gamification.py: Per-element resolver and effects
- test_points.py: Points ledger and points policy
- test_analytics.py: Analytics batch queue and HTTP transport
- test_session.py: ReelSession wiring
- test_config.py: Runtime settings from the environment
- test_web.py: Development collector
- test_cli.py: Command line interface

Run all tests:
    pytest tests/ -v

Run with coverage:
    pytest tests/ -v --cov=src/reel_flow
"""
