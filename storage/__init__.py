"""
storage - Opportunity persistence.
"""
