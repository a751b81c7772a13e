"""
Sitetrack — Chantier Management Platform
Blueprint registry.
"""
