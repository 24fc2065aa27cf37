"""Tests for the gitops-subscriber command line tool."""
