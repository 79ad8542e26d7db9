"""
Temporal activity wrappers, workflow proxies and client-side repositories.

This __init__ imports nothing: the workflow sandbox imports proxies.py
and must not pull in the MinIO backends through activities.py.
"""
