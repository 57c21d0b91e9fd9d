"""
Assignment Module
=================

Bounded context for single point of contact (SPOC) resolution: which one
principal is responsible for a ticket right now.
"""
