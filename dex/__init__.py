"""
dex - Venue configuration, collaborator interfaces and adapters.
"""
