"""
Root conftest.py: makes the backend packages importable during collection.

The agent is laid out as top-level packages (config, auth, deployment, ...)
under backend/, so backend/ itself has to be on sys.path before any test
module is imported.
"""
import sys
import os

backend_dir = os.path.dirname(os.path.abspath(__file__))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)
