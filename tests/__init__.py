"""
Tests Package

Test structure:
- tests/conftest.py - shared fixtures: temp SQLite cache, zero-delay
  components, an httpx.MockTransport upstream that counts calls
- one module per component; no live network
"""
