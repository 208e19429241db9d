"""Tests for the heating optimizer integration."""
