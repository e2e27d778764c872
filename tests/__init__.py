"""
Project-level test suite.

Test Organization:
- integration/ - API integration tests for the public contact form endpoints
- test_*.py - core package tests (Turnstile client)
- App-specific unit tests remain in their app directory (contact/tests.py)
"""
