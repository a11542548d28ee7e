"""
Module 09C - Veris Oracle CLI

Command-line interface for the oracle agent.

Usage:
    python -m oracle_cli run --price 616.51
    python -m oracle_cli continuous --interval 60
    python -m oracle_cli health
    python -m oracle_cli proofs --limit 10
"""

__version__ = "0.1.0"
