"""Tests for payment provider adapters."""
