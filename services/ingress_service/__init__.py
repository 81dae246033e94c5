"""
Ingress Service - accepts image uploads, stores them and publishes thumbnail jobs
"""
