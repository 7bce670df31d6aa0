"""
apkforge Test Suite
===================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/           → apkforge.core (config, models, exceptions)
    ├── test_infrastructure/ → apkforge.infrastructure (invoker, workspace, store, ...)
    ├── test_integrations/   → apkforge.integrations (toolchain, backends, mirror)
    ├── test_orchestration/  → apkforge.orchestration (pipeline, cleanup, sweeper)
    ├── test_integration/    → End-to-end pipeline runs on the fake toolchain
    ├── fake_tools.py        → Zip-based stand-in for apktool / uber-apk-signer
    ├── helpers.py           → Builders shared by fixtures and tests
    └── conftest.py          → Shared pytest fixtures

Running Tests:
    pytest                              # Run all tests
    pytest tests/test_infrastructure/   # Run one layer
"""
