"""Command line tool for gitops-subscriber."""
