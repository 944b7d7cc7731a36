"""Core of Intune Commander: tenant credentials and Entra ID directory reads.

The package resolves azure-identity credentials for tenant profiles and walks
paged Microsoft Graph collections (groups, group members, Intune policies).
"""
