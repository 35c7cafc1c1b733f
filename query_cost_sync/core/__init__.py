"""
Core modules for Query Cost Sync.

This package contains artifact parsing, placeholder normalization,
reconciliation, the analysis pipeline and the patch applier.
"""
