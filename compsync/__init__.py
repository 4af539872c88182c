"""
CompSync - MRA Finding Tracker
==============================

A small service for:
1. Tracking regulatory examination findings (MRAs) through remediation
2. Linking supporting evidence documents to findings
3. Drafting examiner-ready responses with an optional LLM

No auth, no multi-tenancy. State lives in one in-process store.
"""

__version__ = "1.0.0"
