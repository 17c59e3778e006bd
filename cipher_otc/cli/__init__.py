"""Command line interface for CipherOTC."""
