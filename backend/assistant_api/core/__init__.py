"""
Core application modules.
Contains logging, tracing, metrics, configuration, the quota ledger and
session gating.
"""
