"""
Membership domain: applications, reference data, cascading selection,
list filters and PDF export.
"""
