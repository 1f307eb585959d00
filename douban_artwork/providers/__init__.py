"""
Host-facing remote image providers.
"""
