"""Test data factories for the codepact challenge engine."""
