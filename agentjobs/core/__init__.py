"""Core domain and services."""
