"""
Access Module
=============

Bounded context for principals and their privileges.

Responsibilities:
- Resolve a principal's role with a two-tier cache policy
- Answer role + domain/scope capability checks
- Mutate roles and grants, invalidating cached roles synchronously
"""
