"""
Backend Scripts Module

This module contains utility scripts for database operations and maintenance.

Available scripts:
    - seed_rules.py: Creates the default reminder rules

Usage:
    python -m scripts.seed_rules
"""
