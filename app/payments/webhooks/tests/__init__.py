"""Tests for Pi webhook ingestion."""
