"""Routing — compiled patterns and a route table with literal-first matching.

Routes are registered during setup and the table is frozen when the app
freezes.
"""
