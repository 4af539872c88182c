#!/usr/bin/env python3
"""
Quick runner for CompSync
=========================

Usage:
    python -m compsync.run
    # or
    python compsync/run.py
"""

import uvicorn

if __name__ == "__main__":
    print("Starting CompSync MRA tracker...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "compsync.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
