"""
Services package for the clinical rules API.

Contains the catalog providers and the rule store, which combine the
compiler with external collaborators (clinic inventory, database).
"""
