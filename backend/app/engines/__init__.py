"""Engines module - pure numbering, lifecycle and disclosure rules.

Engines never touch storage; services read state under the case lock,
call into an engine and persist the result.
"""
